"""
`iecbridge inspect` lists the program units found in a source tree or export,
without writing anything.
"""
from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from typing import List, Optional

from .config import ConversionSettings, parse_base_path
from .input import LoadedUnits, UnsupportedFileFormatError, load_file_by_name
from .unit import ConversionError, Unit

try:
    import apischema
except ImportError:
    apischema = None

DESCRIPTION = __doc__

logger = logging.getLogger(__name__)


def build_arg_parser(argparser=None):
    if argparser is None:
        argparser = argparse.ArgumentParser()

    argparser.description = DESCRIPTION
    argparser.formatter_class = argparse.RawTextHelpFormatter

    argparser.add_argument(
        "source",
        type=str,
        help="Source directory or file (.st, .EXP, .export, .xml)",
    )

    argparser.add_argument(
        "-f",
        "--from",
        dest="input_format",
        type=str,
        help="Input format, if it cannot be determined from the source path",
    )

    argparser.add_argument(
        "--base",
        type=str,
        help="Comma-separated project base path to remove from tree paths",
    )

    argparser.add_argument(
        "--strip",
        type=int,
        help="Number of leading path segments to remove",
    )

    argparser.add_argument(
        "--json",
        dest="use_json",
        action="store_true",
        help="Output a JSON representation of the units (requires apischema)",
    )

    argparser.add_argument(
        "--declarations",
        action="store_true",
        help="Include the declaration of each unit",
    )
    return argparser


def dump_json(units: List[Unit], indent: Optional[int] = 2) -> str:
    """
    Serialize ``units`` to JSON with apischema.

    Raises
    ------
    RuntimeError
        If apischema is not installed.
    """
    if apischema is None:
        raise RuntimeError(
            "Optional dependency apischema is required to output a JSON "
            "representation of program units."
        )

    serialized = apischema.serialize(
        List[Unit],
        units,
        exclude_defaults=True,
        no_copy=True,
    )
    return json.dumps(serialized, indent=indent)


def summarize(loaded: LoadedUnits, declarations: bool = False) -> str:
    """A plain text listing of loaded and skipped units."""
    lines = []
    for unit in loaded.units:
        kind = str(unit.kind)
        if unit.kind.is_executable:
            kind = f"{kind} ({unit.implementation_kind})"
        lines.append(f"{kind:<30} {unit}")
        if declarations:
            lines.extend(
                f"    {line}" for line in unit.declaration.splitlines()
            )

    for identifier, error in loaded.skipped:
        lines.append(f"{'SKIPPED':<30} {identifier}: {error}")

    lines.append(f"{len(loaded.units)} units, {len(loaded.skipped)} skipped")
    return "\n".join(lines)


def main(
    source: str,
    input_format: Optional[str] = None,
    base: Optional[str] = None,
    strip: Optional[int] = None,
    use_json: bool = False,
    declarations: bool = False,
) -> LoadedUnits:
    settings = ConversionSettings(
        source=pathlib.Path(source).expanduser(),
        base_path=parse_base_path(base),
        strip=strip,
    )

    try:
        loaded = load_file_by_name(settings.source, input_format, settings=settings)
    except (ConversionError, UnsupportedFileFormatError, OSError) as ex:
        logger.error("Unable to load %s: %s", source, ex)
        sys.exit(1)

    if use_json:
        print(dump_json(loaded.units))
    else:
        print(summarize(loaded, declarations=declarations))
    return loaded
