"""Structured Text source trees: one unit per ``.st`` file, folders as tree paths."""
from __future__ import annotations

import logging
import pathlib
from typing import List, Optional

from .config import ConversionSettings
from .input import LoadedUnits, register_input_handler
from .output import OutputFile, register_output_handler
from .splitter import (configuration_name, has_end_keyword,
                       is_wrapped_configuration,
                       split_declaration_implementation, strip_end_keyword,
                       unwrap_configuration, wrap_configuration)
from .typing import AnyPath, TreePath
from .unit import SourceType, UnrecognizedUnitError, Unit, classify_source
from .util import (IdentifierAllocator, first_meaningful_line,
                   read_source_text, relative_tree_path, trim_blank_lines)

logger = logging.getLogger(__name__)

ST_SUFFIX = ".st"

#: Written above the CONFIGURATION generated around a global variable list.
CONFIGURATION_HEADER = "// Global variable list container: VAR_GLOBAL blocks are extracted on import"
#: Written between the declaration and the body of a stubbed POU.
STUB_NOTE = "// NOTE: Original implementation was non-ST ({kind}). Stub generated."


def units_from_source(code: str, name: str, tree_path: TreePath = ()) -> List[Unit]:
    """
    Build units from the contents of one source file.

    Parameters
    ----------
    code : str
        The file contents.
    name : str
        The unit name, typically the file stem.
    tree_path : tuple of str
        The folder path of the file relative to the source root.

    Returns
    -------
    list of Unit
        One unit, or one per global variable block for a CONFIGURATION.

    Raises
    ------
    UnrecognizedUnitError
        If the source does not start with a recognized keyword.
    MalformedContainerError
        If a CONFIGURATION holds no global variable blocks.
    """
    kind = classify_source(code)
    if kind == SourceType.configuration:
        blocks = unwrap_configuration(code)
        config_name = configuration_name(code) or name
        if len(blocks) == 1:
            return [
                Unit(
                    name=config_name,
                    kind=SourceType.var_global,
                    declaration=blocks[0],
                    tree_path=tree_path,
                )
            ]
        return [
            Unit(
                name=f"{config_name}_{idx}",
                kind=SourceType.var_global,
                declaration=block,
                tree_path=tree_path,
            )
            for idx, block in enumerate(blocks, start=1)
        ]

    if not kind.is_unit_kind:
        raise UnrecognizedUnitError(
            f"Unrecognized first line {first_meaningful_line(code)!r}",
            identifier=name,
        )

    if kind.is_executable:
        declaration, implementation = split_declaration_implementation(code)
        return [
            Unit(
                name=name,
                kind=kind,
                declaration=declaration,
                implementation=implementation,
                tree_path=tree_path,
            )
        ]

    return [
        Unit(
            name=name,
            kind=kind,
            declaration=trim_blank_lines(code),
            tree_path=tree_path,
        )
    ]


def find_source_files(root: pathlib.Path) -> List[pathlib.Path]:
    """All ``.st`` files below ``root`` (extension case-insensitive), sorted."""
    return sorted(
        path for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() == ST_SUFFIX
    )


def load_source_tree(path: AnyPath, settings: ConversionSettings) -> LoadedUnits:
    """
    Load a source directory, or a single source file.

    Each file's directory relative to the source root becomes the tree path of
    its units; a single file is loaded with an empty tree path.
    """
    path = pathlib.Path(path)
    if path.is_file():
        root = path.parent
        filenames = [path]
        single_file = True
    else:
        root = path
        filenames = find_source_files(path)
        single_file = False

    result = LoadedUnits()
    for filename in filenames:
        tree_path = () if single_file else relative_tree_path(filename, root)
        identifier = "/".join((*tree_path, filename.name))
        try:
            units = units_from_source(
                read_source_text(filename),
                name=filename.stem,
                tree_path=tree_path,
            )
        except UnrecognizedUnitError as ex:
            result.add_skipped(identifier, ex)
            continue

        for unit in units:
            logger.debug("Loaded %s %s from %s", unit.kind, unit.name, identifier)
        result.units.extend(units)

    if not filenames:
        logger.warning("No %s files found in %s", ST_SUFFIX, path)
    return result


def render_unit(unit: Unit) -> str:
    """
    The source file contents for ``unit``.

    Global variable lists are wrapped in a CONFIGURATION; POUs get their
    implementation and end keyword appended to the declaration.  Stubbed
    POUs carry a note naming the language of the replaced implementation.
    """
    if unit.kind == SourceType.var_global:
        if is_wrapped_configuration(unit.declaration):
            code = unit.declaration
        else:
            code = "\n".join(
                (CONFIGURATION_HEADER, wrap_configuration(unit.name, unit.declaration))
            )
    elif unit.kind.is_executable:
        parts = [strip_end_keyword(unit.declaration, unit.kind)]
        if unit.stubbed:
            parts.append(STUB_NOTE.format(kind=unit.implementation_kind))
        if unit.implementation:
            parts.append(unit.implementation)
        if not has_end_keyword(parts[-1], unit.kind):
            parts.append(unit.end_keyword)
        code = "\n".join(parts)
    else:
        code = unit.declaration
    return f"{code}\n"


def render_source_tree(
    units: List[Unit],
    settings: ConversionSettings,
    allocator: Optional[IdentifierAllocator] = None,
) -> List[OutputFile]:
    """One ``.st`` file per unit, below its tree path unless flat."""
    return [
        OutputFile(
            path=unit.relative_path(flat=settings.flat, suffix=ST_SUFFIX),
            contents=render_unit(unit),
            units=[unit],
        )
        for unit in units
    ]


def _register():
    """Register the structured text source tree handlers."""
    register_input_handler("st", load_source_tree)
    register_input_handler(ST_SUFFIX, load_source_tree)

    register_output_handler("st", render_source_tree)
