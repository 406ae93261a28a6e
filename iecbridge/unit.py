"""
The canonical program unit shared by every format adapter.

A :class:`Unit` is a POU (function, function block, program), a data type
(DUT) or a global variable list (GVL).  Adapters convert their native
representation to and from a list of units; the pipeline in
:mod:`iecbridge.convert` moves units between adapters.
"""
from __future__ import annotations

import dataclasses
import enum
import re
from typing import Optional, Tuple

from .stub import synthesize_stub
from .typing import Self, TreePath
from .util import blank_comments, first_meaningful_line

ACCESS_MODIFIERS = frozenset(
    {"abstract", "public", "private", "protected", "internal", "final"}
)


class ConversionError(Exception):
    """Base class for conversion failures."""


class UnrecognizedUnitError(ConversionError):
    """
    The first meaningful line of a unit does not match any known kind.

    Only the offending unit is skipped.
    """

    def __init__(self, message: str, identifier: str = ""):
        super().__init__(message)
        self.identifier = identifier


class MalformedContainerError(ConversionError):
    """A document or CONFIGURATION container lacks its required structure."""


class NameCollisionError(ConversionError):
    """Two units resolve to the same output identity."""

    def __init__(self, message: str, identifier: str = ""):
        super().__init__(message)
        self.identifier = identifier


class SourceType(enum.Enum):
    """Top-level construct of a source text, identified by its leading keyword."""
    function_block = "FUNCTION_BLOCK"
    function = "FUNCTION"
    program = "PROGRAM"
    data_type = "TYPE"
    var_global = "VAR_GLOBAL"
    configuration = "CONFIGURATION"
    unknown = ""

    def __str__(self) -> str:
        return self.name

    @property
    def keyword(self) -> str:
        return self.value

    @property
    def is_unit_kind(self) -> bool:
        """Units may be of this kind (CONFIGURATION is only a wrapper)."""
        return self not in (SourceType.configuration, SourceType.unknown)

    @property
    def is_executable(self) -> bool:
        """POUs carry an implementation; data types and GVLs do not."""
        return self in (
            SourceType.function,
            SourceType.function_block,
            SourceType.program,
        )

    def get_implicit_block_end(self) -> str:
        return {
            SourceType.function: "END_FUNCTION",
            SourceType.function_block: "END_FUNCTION_BLOCK",
            SourceType.program: "END_PROGRAM",
            SourceType.data_type: "",
            SourceType.var_global: "",
            SourceType.configuration: "END_CONFIGURATION",
            SourceType.unknown: "",
        }[self]


#: Keyword match order; FUNCTION_BLOCK must be tried before FUNCTION.
CLASSIFICATION_ORDER = (
    SourceType.function_block,
    SourceType.function,
    SourceType.program,
    SourceType.data_type,
    SourceType.var_global,
    SourceType.configuration,
)

_KEYWORD_RES = {
    source_type: re.compile(rf"^{source_type.keyword}(\s|$)", re.IGNORECASE)
    for source_type in CLASSIFICATION_ORDER
}


class ImplementationKind(enum.Enum):
    """The language an implementation was written in."""
    structured_text = "ST"
    fbd = "FBD"
    ladder = "LD"
    sfc = "SFC"
    il = "IL"
    cfc = "CFC"
    unknown = "UNKNOWN"

    def __str__(self) -> str:
        return self.value

    @property
    def is_textual(self) -> bool:
        return self is ImplementationKind.structured_text


def classify(line: str) -> SourceType:
    """
    Classify a unit by its first meaningful line.

    Parameters
    ----------
    line : str
        The first line that is neither blank nor a comment or pragma.

    Returns
    -------
    SourceType
        The matched kind, or ``SourceType.unknown``.
    """
    line = line.strip()
    for source_type in CLASSIFICATION_ORDER:
        if _KEYWORD_RES[source_type].match(line):
            return source_type
    return SourceType.unknown


def classify_source(code: str) -> SourceType:
    """Classify a complete source text by its first meaningful line."""
    return classify(first_meaningful_line(code))


def find_identifier(code: str, source_type: Optional[SourceType] = None) -> Optional[str]:
    """
    Find the name declared by the header of ``code``.

    Parameters
    ----------
    code : str
        The declaration text.
    source_type : SourceType, optional
        The kind of the declaration, if already known.

    Returns
    -------
    str or None
        The identifier, or None if it could not be determined.
    """
    tokens = re.split(r"[\s:(;]+", blank_comments(code))
    tokens = [token for token in tokens if token]
    if not tokens:
        return None

    if source_type is None:
        source_type = classify(tokens[0])

    if source_type in (SourceType.unknown, SourceType.var_global):
        return None

    if tokens[0].upper() != source_type.keyword:
        return None

    for token in tokens[1:]:
        if token.lower() in ACCESS_MODIFIERS:
            continue
        return token
    return None


@dataclasses.dataclass(frozen=True)
class Unit:
    """
    A single program unit.

    Attributes
    ----------
    name : str
        The unit identifier.
    kind : SourceType
        One of the unit kinds (see :attr:`SourceType.is_unit_kind`).
    declaration : str
        The declaration (interface) portion.  For data types and global
        variable lists this is the entire content.
    implementation : str
        The body of a POU.  Always empty for data types and GVLs.
    implementation_kind : ImplementationKind
        The language of the original implementation.
    tree_path : tuple of str
        Folder names locating the unit in the project tree.
    stubbed : bool
        The implementation was replaced by a synthesized stub.
    """
    name: str
    kind: SourceType
    declaration: str
    implementation: str = ""
    implementation_kind: ImplementationKind = ImplementationKind.structured_text
    tree_path: TreePath = ()
    stubbed: bool = False

    def __post_init__(self):
        if not self.kind.is_unit_kind:
            raise ValueError(f"{self.name}: {self.kind} is not a unit kind")
        if self.implementation and not self.kind.is_executable:
            raise ValueError(
                f"{self.name}: {self.kind} units may not have an implementation"
            )
        if not isinstance(self.tree_path, tuple):
            object.__setattr__(self, "tree_path", tuple(self.tree_path))

    def __str__(self) -> str:
        return "/".join((*self.tree_path, self.name))

    @property
    def end_keyword(self) -> str:
        return self.kind.get_implicit_block_end()

    @property
    def needs_stub(self) -> bool:
        return (
            self.kind.is_executable
            and not self.implementation_kind.is_textual
            and not self.stubbed
        )

    @property
    def tag(self) -> str:
        """A short informational tag for reports, e.g. ``[STUB:FBD]``."""
        if self.stubbed:
            return f"[STUB:{self.implementation_kind}]"
        return ""

    def with_stub(self) -> Self:
        """A copy of this unit with its implementation replaced by a stub."""
        return dataclasses.replace(
            self,
            implementation=synthesize_stub(self.declaration),
            stubbed=True,
        )

    def relative_path(self, flat: bool = False, suffix: str = ".st") -> Tuple[str, ...]:
        """Path components of the file this unit is written to."""
        filename = f"{self.name}{suffix}"
        if flat:
            return (filename, )
        return (*self.tree_path, filename)
