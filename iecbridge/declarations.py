"""
Structured views of declaration text.

Variable declarations and type specifications are parsed with a small lark
grammar (``declarations.lark``); the surrounding ``VAR`` / ``TYPE`` block
structure is scanned line-by-line.  These are used where a structured
representation is required (PLCOpen variable lists, data types, stubs) and
are intentionally lenient: anything the grammar does not understand falls
back to a best-effort split on ``:`` and ``:=``.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union

import lark

from .util import (blank_comments, first_meaningful_line, normalize_newlines,
                   remove_comment_characters)

logger = logging.getLogger(__name__)

T = TypeVar("T")

GRAMMAR_FILENAME = "declarations.lark"

_PARSER = None
_rule_to_class: Dict[str, type] = {}
_class_handlers: Dict[str, Callable] = {}

VAR_SECTIONS = (
    "VAR_INPUT",
    "VAR_OUTPUT",
    "VAR_IN_OUT",
    "VAR_GLOBAL",
    "VAR_EXTERNAL",
    "VAR_CONFIG",
    "VAR_TEMP",
    "VAR_STAT",
    "VAR_INST",
    "VAR",
)
VAR_QUALIFIERS = ("CONSTANT", "RETAIN", "PERSISTENT", "NON_RETAIN")

RE_VAR_SECTION = re.compile(
    r"^(" + "|".join(VAR_SECTIONS) + r")\b\s*(.*)$",
    re.IGNORECASE,
)
RE_END_VAR = re.compile(r"^END_VAR\b", re.IGNORECASE)

RE_TYPE_BLOCK = re.compile(r"\bTYPE\b(.*?)(?:\bEND_TYPE\b|\Z)", re.IGNORECASE | re.DOTALL)
RE_STRUCT = re.compile(
    r"([A-Za-z_]\w*)\s*(?:EXTENDS\s+([\w.]+)\s*)?:\s*(STRUCT|UNION)\b(.*?)\bEND_(?:STRUCT|UNION)\b\s*;?",
    re.IGNORECASE | re.DOTALL,
)
RE_ENUM = re.compile(
    r"([A-Za-z_]\w*)\s*:\s*\((.*?)\)\s*([A-Za-z_]\w*)?\s*(?::=\s*([^;]+?))?\s*;",
    re.IGNORECASE | re.DOTALL,
)
RE_ALIAS = re.compile(
    r"([A-Za-z_]\w*)\s*:\s*([^;]+?)\s*;",
    re.IGNORECASE | re.DOTALL,
)


def new_parser(start: Optional[List[str]] = None, **kwargs) -> lark.Lark:
    """
    Get a new parser for variable declarations and type specifications.

    Parameters
    ----------
    start : list of str, optional
        Starting rules.  Defaults to ``var_declaration`` and
        ``type_specification``.
    **kwargs :
        See :class:`lark.lark.LarkOptions`.
    """
    if start is None:
        start = ["var_declaration", "type_specification"]

    return lark.Lark.open_from_package(
        "iecbridge",
        GRAMMAR_FILENAME,
        parser="earley",
        maybe_placeholders=True,
        start=start,
        **kwargs,
    )


def get_parser() -> lark.Lark:
    """Get a cached lark.Lark parser for declarations."""
    global _PARSER

    if _PARSER is None:
        _PARSER = new_parser()
    return _PARSER


def _get_default_instantiator(cls: Type[T]):
    def instantiator(*args) -> T:
        return cls(*args)

    return instantiator


def _rule_handler(*rules: str) -> Callable[[Type[T]], Type[T]]:
    """Decorator - the wrapped class will handle the provided rules."""
    def wrapper(cls: Type[T]) -> Type[T]:
        if not hasattr(cls, "from_lark"):
            cls.from_lark = _get_default_instantiator(cls)

        for rule in rules:
            handler = _rule_to_class.get(rule, None)
            if handler is not None:
                raise ValueError(
                    f"Handler already specified for: {rule} ({handler})"
                )  # pragma: no cover

            _rule_to_class[rule] = cls
            _class_handlers[rule] = cls.from_lark
        return cls

    return wrapper


@_rule_handler("named_type")
@dataclass
class NamedType:
    """An elementary or user-defined type, referenced by name."""
    name: str

    @staticmethod
    def from_lark(name: lark.Token) -> NamedType:
        # Collapse whitespace in ``POINTER  TO  X``
        return NamedType(name=" ".join(str(name).split()))

    def __str__(self) -> str:
        return self.name


@_rule_handler("string_type")
@dataclass
class StringType:
    """``STRING``, ``WSTRING`` and their sized variants."""
    type_name: str
    length: Optional[str] = None

    @staticmethod
    def from_lark(type_name: lark.Token, length: Optional[lark.Token]) -> StringType:
        return StringType(
            type_name=str(type_name).upper(),
            length=str(length) if length is not None else None,
        )

    @property
    def is_wide(self) -> bool:
        return self.type_name == "WSTRING"

    def __str__(self) -> str:
        if self.length is not None:
            return f"{self.type_name}({self.length})"
        return self.type_name


@_rule_handler("subrange")
@dataclass
class Subrange:
    lower: str
    upper: str

    @staticmethod
    def from_lark(lower: lark.Token, upper: lark.Token) -> Subrange:
        return Subrange(lower=str(lower), upper=str(upper))

    def __str__(self) -> str:
        return f"{self.lower}..{self.upper}"


@_rule_handler("array_type")
@dataclass
class ArrayType:
    dimensions: List[Subrange]
    base_type: TypeSpecification

    @staticmethod
    def from_lark(*args) -> ArrayType:
        *dimensions, base_type = args
        return ArrayType(dimensions=list(dimensions), base_type=base_type)

    def __str__(self) -> str:
        dimensions = ", ".join(str(dim) for dim in self.dimensions)
        return f"ARRAY[{dimensions}] OF {self.base_type}"


TypeSpecification = Union[ArrayType, StringType, NamedType]


@_rule_handler("var_declaration")
@dataclass
class VariableDeclaration:
    """
    A single declaration statement, possibly naming several variables.

    Attributes
    ----------
    names : list of str
        The declared variable names.
    location : str, optional
        Direct address given with ``AT``.
    type_spec : TypeSpecification
        The declared type.
    initial_value : str, optional
        The ``:=`` initializer, verbatim.
    comment : str
        Text of a trailing comment on the declaration line.
    """
    names: List[str]
    location: Optional[str]
    type_spec: TypeSpecification
    initial_value: Optional[str] = None
    comment: str = ""

    @classmethod
    def from_text(cls, code: str, comment: str = "") -> VariableDeclaration:
        """
        Parse a declaration statement, falling back to a plain split if the
        grammar does not accept it.
        """
        code = code.strip()
        try:
            tree = get_parser().parse(code, start="var_declaration")
        except lark.LarkError as ex:
            logger.debug("Falling back to simple declaration split for %r: %s", code, ex)
            decl = cls._from_text_fallback(code)
        else:
            decl = DeclarationTransformer().transform(tree)
        decl.comment = comment
        return decl

    @classmethod
    def _from_text_fallback(cls, code: str) -> VariableDeclaration:
        code = code.rstrip(";").strip()
        names, _, remainder = code.partition(":")
        location = None
        match = re.match(r"^(.*?)\s+AT\s+(\S+)\s*$", names, re.IGNORECASE)
        if match:
            names, location = match.groups()

        type_text, assign, initial_value = remainder.partition(":=")
        return cls(
            names=[name.strip() for name in names.split(",") if name.strip()],
            location=location,
            type_spec=NamedType(" ".join(type_text.split())),
            initial_value=initial_value.strip() if assign else None,
        )

    def __str__(self) -> str:
        names = ", ".join(self.names)
        if self.location:
            names = f"{names} AT {self.location}"
        result = f"{names} : {self.type_spec}"
        if self.initial_value is not None:
            result = f"{result} := {self.initial_value}"
        return f"{result};"


def _handler_wrapper(handler):
    def wrapped(self, children: list):
        return handler(*children)

    return wrapped


class DeclarationTransformer(lark.visitors.Transformer):
    """Transforms declaration parse trees into the dataclasses above."""

    locals().update(
        **dict(
            (str(name), _handler_wrapper(handler))
            for name, handler in _class_handlers.items()
        )
    )

    def var_names(self, children: list) -> List[str]:
        return [str(name) for name in children]

    def location(self, children: list) -> str:
        (address,) = children
        return str(address)

    def initial_value(self, children: list) -> str:
        (value,) = children
        return str(value).strip()

    def type_specification(self, children: list) -> TypeSpecification:
        (type_spec,) = children
        return type_spec


def parse_type_specification(text: str) -> TypeSpecification:
    """Parse a type specification such as ``ARRAY[1..2] OF STRING(10)``."""
    text = " ".join(blank_comments(text).split())
    try:
        tree = get_parser().parse(text, start="type_specification")
    except lark.LarkError as ex:
        logger.debug("Unparsed type specification %r: %s", text, ex)
        return NamedType(text)
    return DeclarationTransformer().transform(tree)


@dataclass
class VariableBlock:
    """A ``VAR_*`` ... ``END_VAR`` block."""
    section: str
    qualifiers: List[str] = dataclasses.field(default_factory=list)
    variables: List[VariableDeclaration] = dataclasses.field(default_factory=list)

    @property
    def header(self) -> str:
        return " ".join((self.section, *self.qualifiers))


def _code_and_comment_lines(text: str) -> List[Tuple[str, str]]:
    """
    Pair each line's code (comments blanked) with its trailing comment text.
    """
    text = normalize_newlines(text)
    result = []
    for original, blanked in zip(text.split("\n"), blank_comments(text).split("\n")):
        code = blanked.rstrip()
        remainder = original[len(code):].strip()
        comment = remove_comment_characters(remainder) if remainder else ""
        result.append((code.strip(), comment))
    return result


def _iter_statements(lines: List[Tuple[str, str]]):
    """Join (code, comment) lines into ``;``-terminated statements."""
    pending: List[str] = []
    pending_comment = ""
    for code, comment in lines:
        if not code:
            continue
        pending.append(code)
        if comment:
            pending_comment = comment
        if code.endswith(";"):
            yield " ".join(pending), pending_comment
            pending = []
            pending_comment = ""

    if pending:
        yield " ".join(pending), pending_comment


def parse_var_blocks(declaration: str) -> List[VariableBlock]:
    """
    Find all ``VAR_*`` blocks and their variables in ``declaration``.

    Parameters
    ----------
    declaration : str
        The declaration text of a POU or a global variable list.

    Returns
    -------
    list of VariableBlock
    """
    blocks = []
    block: Optional[VariableBlock] = None
    block_lines: List[Tuple[str, str]] = []

    for code, comment in _code_and_comment_lines(declaration):
        if block is None:
            match = RE_VAR_SECTION.match(code)
            if match:
                section, qualifiers = match.groups()
                block = VariableBlock(
                    section=section.upper(),
                    qualifiers=[
                        qualifier for qualifier in qualifiers.upper().split()
                        if qualifier in VAR_QUALIFIERS
                    ],
                )
                block_lines = []
            continue

        if RE_END_VAR.match(code):
            block.variables = [
                VariableDeclaration.from_text(statement, comment=statement_comment)
                for statement, statement_comment in _iter_statements(block_lines)
            ]
            blocks.append(block)
            block = None
            continue

        block_lines.append((code, comment))

    if block is not None:
        logger.warning("Unterminated %s block in declaration", block.section)
    return blocks


@dataclass
class EnumValue:
    name: str
    value: Optional[str] = None

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.name} := {self.value}"
        return self.name


@dataclass
class StructureDeclaration:
    name: str
    members: List[VariableDeclaration]


@dataclass
class EnumerationDeclaration:
    name: str
    values: List[EnumValue]
    base_type: Optional[str] = None
    initial_value: Optional[str] = None


@dataclass
class AliasDeclaration:
    name: str
    type_spec: TypeSpecification
    initial_value: Optional[str] = None


DataTypeDeclaration = Union[StructureDeclaration, EnumerationDeclaration, AliasDeclaration]


def _parse_enum_values(text: str) -> List[EnumValue]:
    values = []
    for item in text.split(","):
        name, assign, value = item.partition(":=")
        if name.strip():
            values.append(
                EnumValue(name=name.strip(), value=value.strip() if assign else None)
            )
    return values


def parse_data_types(declaration: str) -> List[DataTypeDeclaration]:
    """
    Parse the data types declared inside ``TYPE`` ... ``END_TYPE``.

    Structures (and unions), enumerations and aliases are recognized; other
    constructs are skipped with a debug message.
    """
    declaration = normalize_newlines(declaration)
    # blank_comments keeps character offsets, so positions in ``blanked`` are
    # valid in ``declaration``.
    blanked = blank_comments(declaration)
    match = RE_TYPE_BLOCK.search(blanked)
    if match is None:
        return []

    pos, end = match.span(1)
    result: List[DataTypeDeclaration] = []
    while pos < end:
        while pos < end and blanked[pos].isspace():
            pos += 1
        if pos >= end:
            break

        struct = RE_STRUCT.match(blanked, pos, end)
        if struct is not None:
            name = struct.group(1)
            members = [
                VariableDeclaration.from_text(statement, comment=comment)
                for statement, comment in _iter_statements(
                    _code_and_comment_lines(declaration[struct.start(4): struct.end(4)])
                )
            ]
            result.append(
                StructureDeclaration(name=name, members=members)
            )
            pos = struct.end()
            continue

        enum = RE_ENUM.match(blanked, pos, end)
        if enum is not None:
            name, values, base_type, initial_value = enum.groups()
            result.append(
                EnumerationDeclaration(
                    name=name,
                    values=_parse_enum_values(" ".join(values.split())),
                    base_type=base_type,
                    initial_value=initial_value.strip() if initial_value else None,
                )
            )
            pos = enum.end()
            continue

        alias = RE_ALIAS.match(blanked, pos, end)
        if alias is not None:
            name, type_text = alias.groups()
            type_text, assign, initial_value = type_text.partition(":=")
            result.append(
                AliasDeclaration(
                    name=name,
                    type_spec=parse_type_specification(type_text),
                    initial_value=initial_value.strip() if assign else None,
                )
            )
            pos = alias.end()
            continue

        logger.debug("Unrecognized data type declaration at: %r", blanked[pos: pos + 40])
        break

    return result


@dataclass
class PouHeader:
    name: Optional[str]
    return_type: Optional[TypeSpecification] = None


def parse_pou_header(declaration: str) -> PouHeader:
    """Name and (for functions) return type from the first declaration line."""
    line = first_meaningful_line(declaration)
    header, _, return_type = line.partition(":")
    parts = header.split()
    name = None
    for part in parts[1:]:
        if part.upper() not in {"ABSTRACT", "PUBLIC", "PRIVATE", "PROTECTED",
                                "INTERNAL", "FINAL"}:
            name = part
            break

    return PouHeader(
        name=name,
        return_type=(
            parse_type_specification(return_type.strip().rstrip(";"))
            if return_type.strip() else None
        ),
    )
