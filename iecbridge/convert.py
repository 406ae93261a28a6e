"""
`iecbridge convert` converts between Structured Text source trees and PLC
engineering tool exports.

Supported formats:

    st       - a directory of .st files (or a single .st file)
    exp      - CoDeSys 2.3 EXP export
    codesys  - CoDeSys 3.5 project tree export (.export)
    plcopen  - PLCOpen TC6 XML (.xml)

The input format is detected from the source path unless given with --from.
"""
from __future__ import annotations

import argparse
import dataclasses
import logging
import pathlib
import sys
from typing import Dict, List, Optional, Tuple

from . import output
from .config import DEFAULT_COMPANY_NAME, ConversionSettings, parse_base_path
from .input import UnsupportedFileFormatError, get_input_format, load_file_by_name
from .unit import ConversionError, NameCollisionError, Unit
from .util import IdentifierAllocator

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
        "-o",
        "--output",
        type=str,
        default=".",
        help="Output root directory",
    )

    argparser.add_argument(
        "-t",
        "--to",
        dest="output_format",
        type=str,
        default="st",
        help="Output format (st, exp, codesys, plcopen)",
    )

    argparser.add_argument(
        "-f",
        "--from",
        dest="input_format",
        type=str,
        help="Input format, if it cannot be determined from the source path",
    )

    argparser.add_argument(
        "--name",
        type=str,
        help="Base name of the output document, without extension",
    )

    argparser.add_argument(
        "--base",
        type=str,
        help=(
            "Comma-separated project base path, e.g. "
            "'Device,PLC Logic,Application'"
        ),
    )

    argparser.add_argument(
        "--strip",
        type=int,
        help="Number of leading path segments to remove on import",
    )

    argparser.add_argument(
        "--flat",
        action="store_true",
        help="Write all source files to the output root, without sub-directories",
    )

    argparser.add_argument(
        "--company",
        type=str,
        default=DEFAULT_COMPANY_NAME,
        help="Company name for PLCOpen file headers",
    )

    argparser.add_argument(
        "--no-overwrite",
        action="store_true",
        help="Do not replace existing output files",
    )
    return argparser


@dataclasses.dataclass
class ConversionReport:
    """The outcome of one conversion run."""
    #: Units written, with stubs substituted.
    written: List[Unit] = dataclasses.field(default_factory=list)
    #: Files written.
    files: List[pathlib.Path] = dataclasses.field(default_factory=list)
    #: (identifier, reason) for each skipped unit.
    skipped: List[Tuple[str, ConversionError]] = dataclasses.field(default_factory=list)

    @property
    def stubs(self) -> List[Unit]:
        return [unit for unit in self.written if unit.stubbed]

    @property
    def summary(self) -> str:
        return (
            f"Done: {len(self.written)} written ({len(self.stubs)} stubs), "
            f"{len(self.skipped)} skipped"
        )


def substitute_stubs(units: List[Unit]) -> List[Unit]:
    """Replace non-textual implementations with synthesized stubs."""
    result = []
    for unit in units:
        if unit.needs_stub:
            unit = unit.with_stub()
            logger.info("%s %s", unit, unit.tag)
        result.append(unit)
    return result


def get_output_identity(unit: Unit, output_format: str, flat: bool = False) -> str:
    """
    The identity under which ``unit`` is written.

    Source files are identified by their relative path; objects of a single
    output document by their name.  Both compare case-insensitively.
    """
    if output_format == "st":
        return "/".join(unit.relative_path(flat=flat)).lower()
    return unit.name.lower()


def remove_collisions(
    units: List[Unit], output_format: str, flat: bool = False
) -> Tuple[List[Unit], List[Tuple[str, ConversionError]]]:
    """Keep the first unit of each output identity; report the rest."""
    seen: Dict[str, Unit] = {}
    kept = []
    skipped = []
    for unit in units:
        identity = get_output_identity(unit, output_format, flat=flat)
        first = seen.get(identity)
        if first is not None:
            error = NameCollisionError(
                f"{unit.kind} {unit} collides with {first.kind} {first}",
                identifier=str(unit),
            )
            logger.warning("Skipping %s: %s", unit, error)
            skipped.append((str(unit), error))
            continue
        seen[identity] = unit
        kept.append(unit)
    return kept, skipped


def convert(
    settings: ConversionSettings,
    output_format: str = "st",
    input_format: Optional[str] = None,
    allocator: Optional[IdentifierAllocator] = None,
) -> ConversionReport:
    """
    Convert ``settings.source`` to ``output_format`` below ``settings.output``.

    Parameters
    ----------
    settings : ConversionSettings
        Source, output and layout options.
    output_format : str
        The output handler name.
    input_format : str, optional
        The input handler name or extension, if not detected from the source.
    allocator : IdentifierAllocator, optional
        Identifiers and timestamps for generated documents.  A new allocator
        is created if not given.

    Returns
    -------
    ConversionReport

    Raises
    ------
    MalformedContainerError
        If the input document is structurally broken.
    UnsupportedFileFormatError
        If no input handler matches the source.
    """
    if allocator is None:
        allocator = IdentifierAllocator()

    output_format = output_format.lower()
    handler = output.get_handler_by_name(output_format)
    logger.debug(
        "Converting %s (%s) to %s",
        settings.source,
        get_input_format(settings.source, input_format),
        output_format,
    )
    loaded = load_file_by_name(settings.source, input_format, settings=settings)

    report = ConversionReport(skipped=list(loaded.skipped))
    units = substitute_stubs(loaded.units)
    units, collisions = remove_collisions(units, output_format, flat=settings.flat)
    report.skipped.extend(collisions)

    for output_file in handler(units, settings, allocator):
        try:
            filename = output_file.write_to(settings.output, overwrite=settings.overwrite)
        except FileExistsError as ex:
            error = ConversionError(str(ex))
            for unit in output_file.units:
                logger.warning("Skipping %s: %s", unit, error)
                report.skipped.append((str(unit), error))
            continue

        report.files.append(filename)
        report.written.extend(output_file.units)
        for unit in output_file.units:
            logger.info("%-15s %s %s", unit.kind, filename, unit.tag)

    logger.debug(report.summary)
    return report


def main(
    source: str,
    output: str = ".",
    output_format: str = "st",
    input_format: Optional[str] = None,
    name: Optional[str] = None,
    base: Optional[str] = None,
    strip: Optional[int] = None,
    flat: bool = False,
    company: str = DEFAULT_COMPANY_NAME,
    no_overwrite: bool = False,
) -> ConversionReport:
    settings = ConversionSettings(
        source=pathlib.Path(source).expanduser(),
        output=pathlib.Path(output).expanduser(),
        name=name,
        base_path=parse_base_path(base),
        strip=strip,
        flat=flat,
        overwrite=not no_overwrite,
        company=company,
    )

    try:
        report = convert(
            settings,
            output_format=output_format,
            input_format=input_format,
        )
    except (ConversionError, UnsupportedFileFormatError, OSError, ValueError) as ex:
        logger.error("Conversion of %s failed: %s", source, ex)
        sys.exit(1)

    print(report.summary)
    return report
