"""
Declaration/implementation splitting and CONFIGURATION wrapping.

Structured Text source files hold a POU as one text; the interchange formats
store the declaration and the body separately.  Global variable lists are
kept on disk inside a ``CONFIGURATION`` container, while the interchange
formats expect the bare ``VAR_GLOBAL`` blocks.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .unit import MalformedContainerError, SourceType, classify
from .util import (blank_comments, first_meaningful_line, get_indentation,
                   normalize_newlines, trim_blank_lines)

logger = logging.getLogger(__name__)

#: Trailing lines dropped from an implementation.
POU_END_KEYWORDS = frozenset({"END_PROGRAM", "END_FUNCTION_BLOCK", "END_FUNCTION"})

RE_GLOBAL_BLOCK_START = re.compile(r"^\s*VAR_(GLOBAL|CONFIG)\b", re.IGNORECASE)
RE_END_VAR = re.compile(r"^\s*END_VAR\b", re.IGNORECASE)
RE_CONFIGURATION_NAME = re.compile(r"^CONFIGURATION\s+([A-Za-z_]\w*)", re.IGNORECASE)

WRAPPER_INDENT = "    "


def split_declaration_implementation(source: str) -> Tuple[str, str]:
    """
    Split POU source into its declaration and its implementation.

    The declaration ends with the last line reading exactly ``END_VAR``.  The
    implementation is everything after it, without the closing
    ``END_FUNCTION``-style keyword and surrounding blank lines.

    Parameters
    ----------
    source : str
        The complete source of one unit.

    Returns
    -------
    declaration : str
    implementation : str
        Empty if the source has no ``END_VAR`` line.
    """
    lines = normalize_newlines(source).split("\n")
    last_end_var: Optional[int] = None
    for idx, line in enumerate(lines):
        if line.strip().upper() == "END_VAR":
            last_end_var = idx

    if last_end_var is None:
        return trim_blank_lines(source), ""

    declaration = lines[: last_end_var + 1]
    implementation = lines[last_end_var + 1:]
    while implementation and (
        not implementation[-1].strip()
        or implementation[-1].strip().upper() in POU_END_KEYWORDS
    ):
        implementation.pop(-1)

    return (
        trim_blank_lines("\n".join(declaration)),
        trim_blank_lines("\n".join(implementation)),
    )


def has_end_keyword(text: str, kind: SourceType) -> bool:
    """Does ``text`` already close with the end keyword of ``kind``?"""
    end_keyword = kind.get_implicit_block_end()
    if not end_keyword:
        return False
    code_lines = [line.strip() for line in blank_comments(text).split("\n") if line.strip()]
    return bool(code_lines) and code_lines[-1].upper().rstrip(";") == end_keyword


def strip_end_keyword(text: str, kind: SourceType) -> str:
    """Remove a closing end keyword line of ``kind`` from ``text``, if present."""
    end_keyword = kind.get_implicit_block_end()
    lines = trim_blank_lines(text).split("\n")
    if end_keyword and lines and lines[-1].strip().upper().rstrip(";") == end_keyword:
        lines.pop(-1)
    return trim_blank_lines("\n".join(lines))


def is_wrapped_configuration(body: str) -> bool:
    return classify(first_meaningful_line(body)) == SourceType.configuration


def configuration_name(source: str) -> Optional[str]:
    """The name following the ``CONFIGURATION`` keyword, if any."""
    match = RE_CONFIGURATION_NAME.match(first_meaningful_line(source))
    return match.group(1) if match else None


def unwrap_configuration(source: str) -> List[str]:
    """
    Extract the global variable blocks from a ``CONFIGURATION`` container.

    Each ``VAR_GLOBAL`` (or ``VAR_CONFIG``) ... ``END_VAR`` span is returned
    verbatim, less one level of indentation: the leading whitespace of the
    span's first line is removed from each line that starts with it.

    Raises
    ------
    MalformedContainerError
        If the container holds no global variable blocks.
    """
    lines = normalize_newlines(source).split("\n")
    code_lines = blank_comments("\n".join(lines)).split("\n")
    blocks = []
    span: Optional[List[str]] = None
    prefix = ""

    for line, code in zip(lines, code_lines):
        if span is None:
            if RE_GLOBAL_BLOCK_START.match(code):
                prefix = get_indentation(line)
                span = []
            else:
                continue

        span.append(line[len(prefix):] if line.startswith(prefix) else line.lstrip())
        if RE_END_VAR.match(code):
            blocks.append("\n".join(span))
            span = None

    if span is not None:
        logger.warning("Unterminated global variable block in CONFIGURATION")
        blocks.append("\n".join(span))

    if not blocks:
        name = configuration_name(source) or ""
        raise MalformedContainerError(
            f"CONFIGURATION {name!r} contains no VAR_GLOBAL blocks"
        )
    return blocks


def wrap_configuration(name: str, body: str) -> str:
    """
    Wrap global variable declarations in a ``CONFIGURATION`` container.

    Already-wrapped bodies are returned unchanged.
    """
    if is_wrapped_configuration(body):
        return body

    indented = [
        f"{WRAPPER_INDENT}{line}" if line.strip() else ""
        for line in trim_blank_lines(body).split("\n")
    ]
    return "\n".join((f"CONFIGURATION {name}", *indented, "END_CONFIGURATION"))
