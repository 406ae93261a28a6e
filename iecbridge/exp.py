"""
CoDeSys 2.3 EXP export files.

An EXP file is a flat sequence of object blocks.  Each block starts with a
``(* @NESTEDCOMMENTS := 'Yes' *)`` marker followed by further metadata
comments (path, flags, global variable list name), the declaration, an
``(* @END_DECLARATION := '0' *)`` marker and, for POUs, the body.  Global
variable lists close with an object-end/connections trailer.

CoDeSys 2.3 only accepts CRLF line endings in EXP files.
"""
from __future__ import annotations

import dataclasses
import logging
import pathlib
import re
from typing import Dict, List, Optional

from .config import ConversionSettings, strip_tree_path
from .input import LoadedUnits, register_input_handler
from .output import OutputFile, register_output_handler
from .splitter import has_end_keyword, strip_end_keyword
from .typing import TreePath
from .unit import (ImplementationKind, MalformedContainerError, SourceType,
                   UnrecognizedUnitError, Unit, classify_source,
                   find_identifier)
from .util import (IdentifierAllocator, first_meaningful_line,
                   normalize_newlines, read_source_text, trim_blank_lines)

logger = logging.getLogger(__name__)

EXP_SUFFIX = ".EXP"
#: CoDeSys 2.3 reads and writes Windows-1252.
EXP_ENCODING = "cp1252"
CRLF = "\r\n"
#: Separator of CoDeSys 2.3 object path segments.
PATH_SEPARATOR = "\\/"

RE_NESTED_COMMENTS = re.compile(r"\(\*\s*@NESTEDCOMMENTS\s*:=\s*'[^']*'\s*\*\)")
RE_META_LINE = re.compile(r"^\s*\(\*\s*@(\w+)\s*:=\s*'?(.*?)'?\s*\*\)\s*$")
RE_END_DECLARATION = re.compile(
    r"^[ \t]*\(\*\s*@END_DECLARATION\s*:=\s*'[^']*'\s*\*\)[ \t]*$", re.MULTILINE
)
RE_OBJECT_END = re.compile(r"^\s*\(\*\s*@OBJECT_END\s*:=", re.MULTILINE)
RE_INITIAL_STEP = re.compile(r"^INITIAL_STEP\b", re.IGNORECASE)

#: Leading sigils of bodies written in graphical or list languages.
NON_TEXTUAL_SIGILS = {
    "_FBD_BODY": ImplementationKind.fbd,
    "_LD_BODY": ImplementationKind.ladder,
    "_IL_BODY": ImplementationKind.il,
    "_CFC_BODY": ImplementationKind.cfc,
}

NESTED_COMMENTS_MARKER = "(* @NESTEDCOMMENTS := 'Yes' *)"
OBJECT_FLAGS_MARKER = "(* @OBJECTFLAGS := '0, 8' *)"
SYMFILE_FLAGS_MARKER = "(* @SYMFILEFLAGS := '2048' *)"
END_DECLARATION_MARKER = "(* @END_DECLARATION := '0' *)"


@dataclasses.dataclass
class ExpBlock:
    """One object block of an EXP file, with its metadata separated out."""
    metadata: Dict[str, str]
    declaration: str
    body: str

    @property
    def global_variable_list(self) -> Optional[str]:
        return self.metadata.get("GLOBAL_VARIABLE_LIST")

    @property
    def path(self) -> str:
        return self.metadata.get("PATH", "")

    @classmethod
    def from_text(cls, block: str) -> ExpBlock:
        lines = normalize_newlines(block).split("\n")
        metadata = {}
        idx = 0
        while idx < len(lines):
            line = lines[idx]
            match = RE_META_LINE.match(line)
            if match is not None:
                key, value = match.groups()
                metadata[key.upper()] = value
            elif line.strip():
                break
            idx += 1

        content = "\n".join(lines[idx:])
        object_end = RE_OBJECT_END.search(content)
        if object_end is not None:
            content = content[: object_end.start()]

        end_declaration = RE_END_DECLARATION.search(content)
        if end_declaration is not None:
            declaration = content[: end_declaration.start()]
            body = content[end_declaration.end():]
        else:
            declaration, body = content, ""

        return cls(
            metadata=metadata,
            declaration=trim_blank_lines(declaration),
            body=trim_blank_lines(body),
        )


def split_objects(document: str) -> List[str]:
    """
    Partition an EXP document into object blocks.

    Raises
    ------
    MalformedContainerError
        If the document contains no object blocks.
    """
    document = normalize_newlines(document)
    starts = [match.start() for match in RE_NESTED_COMMENTS.finditer(document)]
    if not starts:
        raise MalformedContainerError("No objects found in EXP document")

    ends = starts[1:] + [len(document)]
    return [document[start:end] for start, end in zip(starts, ends)]


def detect_implementation_kind(body: str) -> ImplementationKind:
    """Judge the language of an EXP body by its leading sigil or step keyword."""
    stripped = body.lstrip()
    if not stripped:
        return ImplementationKind.structured_text

    for sigil, kind in NON_TEXTUAL_SIGILS.items():
        if stripped.startswith(sigil):
            return kind

    if RE_INITIAL_STEP.match(first_meaningful_line(body)):
        return ImplementationKind.sfc
    return ImplementationKind.structured_text


def path_to_tree_path(path: str, settings: ConversionSettings) -> TreePath:
    """``\\/Folder\\/Sub`` to ``("Folder", "Sub")``, less the base path."""
    parts = tuple(part for part in path.split(PATH_SEPARATOR) if part)
    return strip_tree_path(parts, settings)


def tree_path_to_path(tree_path: TreePath, settings: ConversionSettings) -> str:
    parts = (*settings.get_base_path(), *tree_path)
    return "".join(f"{PATH_SEPARATOR}{part}" for part in parts)


def parse_block(block: str, settings: ConversionSettings) -> Unit:
    """
    Build a unit from one EXP object block.

    Raises
    ------
    UnrecognizedUnitError
        If the block is neither a global variable list nor starts with a
        recognized keyword.
    """
    exp_block = ExpBlock.from_text(block)
    tree_path = path_to_tree_path(exp_block.path, settings)

    list_name = exp_block.global_variable_list
    if list_name is not None:
        declaration = exp_block.declaration
        if exp_block.body:
            declaration = "\n".join((declaration, exp_block.body))
        return Unit(
            name=list_name,
            kind=SourceType.var_global,
            declaration=declaration,
            tree_path=tree_path,
        )

    kind = classify_source(exp_block.declaration)
    first_line = first_meaningful_line(exp_block.declaration)
    name = find_identifier(exp_block.declaration, kind) if kind.is_unit_kind else None
    if not kind.is_unit_kind or not name:
        raise UnrecognizedUnitError(
            f"Unrecognized EXP object starting with {first_line!r}",
            identifier=exp_block.path or first_line,
        )

    if not kind.is_executable:
        if exp_block.body:
            logger.debug("Ignoring text after the declaration of %s", name)
        return Unit(
            name=name,
            kind=kind,
            declaration=exp_block.declaration,
            tree_path=tree_path,
        )

    body = strip_end_keyword(exp_block.body, kind)
    implementation_kind = detect_implementation_kind(body)
    return Unit(
        name=name,
        kind=kind,
        declaration=exp_block.declaration,
        implementation=body if implementation_kind.is_textual else "",
        implementation_kind=implementation_kind,
        tree_path=tree_path,
    )


def parse_document(document: str, settings: ConversionSettings) -> LoadedUnits:
    """Build units from every object block of an EXP document."""
    result = LoadedUnits()
    for block in split_objects(document):
        try:
            unit = parse_block(block, settings)
        except UnrecognizedUnitError as ex:
            result.add_skipped(ex.identifier, ex)
            continue
        logger.debug("EXP object: %s %s", unit.kind, unit)
        result.units.append(unit)
    return result


def render_block(unit: Unit, settings: ConversionSettings) -> List[str]:
    """The lines of one EXP object block, without line terminators."""
    lines = [NESTED_COMMENTS_MARKER]
    if unit.kind == SourceType.var_global:
        lines.append(f"(* @GLOBAL_VARIABLE_LIST := '{unit.name}' *)")
    lines.append(f"(* @PATH := '{tree_path_to_path(unit.tree_path, settings)}' *)")
    lines.append(OBJECT_FLAGS_MARKER)
    if unit.kind != SourceType.data_type:
        lines.append(SYMFILE_FLAGS_MARKER)

    declaration = unit.declaration
    if unit.kind.is_executable:
        declaration = strip_end_keyword(declaration, unit.kind)
    lines.extend(normalize_newlines(declaration).split("\n"))

    if unit.kind == SourceType.var_global:
        lines.extend(
            (
                "",
                f"(* @OBJECT_END := '{unit.name}' *)",
                f"(* @CONNECTIONS := {unit.name}",
                "FILENAME : ''",
                "FILETIME : 0",
                "EXPORT : 0",
                "NUMOFCONNECTIONS : 0",
                "*)",
            )
        )
        return lines

    lines.append(END_DECLARATION_MARKER)
    if unit.kind.is_executable:
        if unit.implementation:
            lines.extend(normalize_newlines(unit.implementation).split("\n"))
        if not has_end_keyword(unit.implementation, unit.kind):
            lines.append(unit.end_keyword)
    return lines


def render_document(units: List[Unit], settings: ConversionSettings) -> str:
    """
    Render units as a CRLF-terminated EXP document.

    The document begins with an empty line and each object block is
    followed by one.
    """
    lines = [""]
    for unit in units:
        lines.extend(render_block(unit, settings))
        lines.append("")
    return CRLF.join(lines) + CRLF


def load(filename: pathlib.Path, settings: ConversionSettings) -> LoadedUnits:
    return parse_document(read_source_text(filename), settings)


def save(
    units: List[Unit],
    settings: ConversionSettings,
    allocator: Optional[IdentifierAllocator] = None,
) -> List[OutputFile]:
    name = settings.get_output_name("exp")
    return [
        OutputFile(
            path=(f"{name}{EXP_SUFFIX}", ),
            contents=render_document(units, settings),
            units=list(units),
            encoding=EXP_ENCODING,
        )
    ]


def _register():
    """Register the EXP file handlers."""
    register_input_handler("exp", load)
    register_input_handler(EXP_SUFFIX, load)

    register_output_handler("exp", save)

