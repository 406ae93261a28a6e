from __future__ import annotations

import codecs
import dataclasses
import datetime
import pathlib
import random
import re
import uuid
from typing import List, Optional, Tuple

import lxml.etree

from .typing import AnyPath

RE_LEADING_WHITESPACE = re.compile(r"^[ \t]*")
NEWLINES = "\n\r"
SINGLE_COMMENT = "//"
OPEN_COMMENT = "(*"
CLOSE_COMMENT = "*)"
OPEN_PRAGMA = "{"
CLOSE_PRAGMA = "}"
QUOTES = "'\""

#: Offset between 0001-01-01 (.NET DateTime epoch) and 1970-01-01 in ticks.
DOTNET_EPOCH_TICKS = 621355968000000000
_UNIX_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def blank_comments(text: str, *, replace_char: str = " ") -> str:
    """
    Replace comments and pragmas in ``text`` with ``replace_char``.

    Unlike removing comments outright, line structure and column positions
    are kept intact, so the result may be scanned line-by-line alongside the
    original.  Nested multi-line comments and string literals (including
    ``$``-escaped quotes) are respected.

    Parameters
    ----------
    text : str
        The source code.
    replace_char : str, optional
        The character to substitute for each commented-out character.

    Returns
    -------
    str
    """
    result: List[str] = []
    comment_depth = 0
    pragma_depth = 0
    in_single_comment = False
    quote: Optional[str] = None

    idx = 0
    length = len(text)
    while idx < length:
        this_ch = text[idx]
        pair = text[idx: idx + 2]

        if this_ch in NEWLINES:
            in_single_comment = False
            result.append(this_ch)
            idx += 1
            continue

        if in_single_comment:
            result.append(replace_char)
            idx += 1
            continue

        if quote is not None:
            if this_ch == "$" and idx + 1 < length and text[idx + 1] not in NEWLINES:
                result.append(pair)
                idx += 2
                continue
            if this_ch == quote:
                quote = None
            result.append(this_ch)
            idx += 1
            continue

        if comment_depth:
            if pair in (OPEN_COMMENT, CLOSE_COMMENT):
                comment_depth += 1 if pair == OPEN_COMMENT else -1
                result.append(replace_char * 2)
                idx += 2
            else:
                result.append(replace_char)
                idx += 1
            continue

        if pragma_depth:
            if this_ch == OPEN_PRAGMA:
                pragma_depth += 1
            elif this_ch == CLOSE_PRAGMA:
                pragma_depth -= 1
            result.append(replace_char)
            idx += 1
            continue

        if pair == OPEN_COMMENT:
            comment_depth = 1
            result.append(replace_char * 2)
            idx += 2
        elif pair == SINGLE_COMMENT:
            in_single_comment = True
            result.append(replace_char * 2)
            idx += 2
        elif this_ch == OPEN_PRAGMA:
            pragma_depth = 1
            result.append(replace_char)
            idx += 1
        else:
            if this_ch in QUOTES:
                quote = this_ch
            result.append(this_ch)
            idx += 1

    return "".join(result)


def first_meaningful_line(text: str) -> str:
    """The first line of ``text`` with code in it, comments and pragmas removed."""
    for line in blank_comments(text).splitlines():
        if line.strip():
            return line.strip()
    return ""


def remove_comment_characters(text: str) -> str:
    """Take only the inner contents of a given comment."""
    text = text.strip()
    if text.startswith("/"):
        return text.lstrip("/ ")
    return text.strip("()").strip("* ")


def normalize_newlines(text: str) -> str:
    """Convert CRLF and CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def trim_blank_lines(text: str) -> str:
    """
    Normalize line endings and remove leading/trailing blank lines.

    Indentation of the first non-blank line is kept; trailing whitespace at
    the very end is removed.
    """
    lines = normalize_newlines(text).split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop(-1)
    return "\n".join(lines).rstrip()


def get_indentation(line: str) -> str:
    """The leading whitespace of ``line``."""
    return RE_LEADING_WHITESPACE.match(line).group(0)


def read_source_text(
    fn: AnyPath, *, encodings: Tuple[str, ...] = ("utf-8", "cp1252")
) -> str:
    """
    Read a text file, tolerating a byte order mark and legacy encodings.

    The encodings are tried in order; CoDeSys 2.3 writes Windows-1252.
    Line endings are normalized to LF.
    """
    with open(fn, "rb") as fp:
        raw = fp.read()

    if raw.startswith(codecs.BOM_UTF8):
        raw = raw[len(codecs.BOM_UTF8):]

    for encoding in encodings:
        try:
            return normalize_newlines(raw.decode(encoding))
        except UnicodeDecodeError:
            continue
    return normalize_newlines(raw.decode(encodings[0], errors="replace"))


def tree_to_xml_source(
    tree: lxml.etree.Element,
    encoding: str = "utf-8",
    delimiter: str = "\r\n",
    xml_header: str = '<?xml version="1.0" encoding="{encoding}"?>',
    indent: str = "  ",
    include_utf8_sig: bool = False,
) -> bytes:
    """Return the contents to write for the given XML tree."""
    # NOTE: lxml.etree.tostring(xml_declaration=True) uses single quotes;
    # the engineering tools write double quotes.
    delim_bytes = delimiter.encode(encoding)
    header_bytes = xml_header.format(encoding=encoding).encode(encoding)
    lxml.etree.indent(tree, space=indent)
    if encoding.startswith("utf-8") and include_utf8_sig:
        header_bytes = codecs.BOM_UTF8 + header_bytes

    source = header_bytes + b"\n" + lxml.etree.tostring(
        tree,
        pretty_print=True,
        encoding=encoding,
    )

    if delim_bytes == b"\n":
        # This is what lxml gives us
        return source

    source_lines = source.split(b"\n")
    return delim_bytes.join(source_lines)


@dataclasses.dataclass
class IdentifierAllocator:
    """
    Identifiers and timestamps for a single generation pass.

    One allocator is created per conversion run and handed to every
    generator that needs fresh GUIDs, so that output for a run shares a
    single timestamp.

    Attributes
    ----------
    seed : int, optional
        Seed for reproducible GUID sequences.  Random (UUID4) otherwise.
    timestamp : datetime.datetime, optional
        The generation time.  Defaults to the time of allocator creation.
        Naive datetimes are taken to be UTC.
    """
    seed: Optional[int] = None
    timestamp: Optional[datetime.datetime] = None

    def __post_init__(self):
        self._random = random.Random(self.seed) if self.seed is not None else None
        if self.timestamp is None:
            self.timestamp = datetime.datetime.now(datetime.timezone.utc)
        elif self.timestamp.tzinfo is None:
            self.timestamp = self.timestamp.replace(tzinfo=datetime.timezone.utc)

    def new_guid(self) -> str:
        """A new lower-case GUID string, without braces."""
        if self._random is None:
            return str(uuid.uuid4())
        return str(uuid.UUID(int=self._random.getrandbits(128), version=4))

    def dotnet_ticks(self) -> int:
        """The timestamp in .NET ticks (100ns intervals since 0001-01-01)."""
        delta = self.timestamp - _UNIX_EPOCH
        return delta // datetime.timedelta(microseconds=1) * 10 + DOTNET_EPOCH_TICKS

    def iso_timestamp(self) -> str:
        """The timestamp in the ``xsd:dateTime`` form used by PLCOpen headers."""
        return self.timestamp.strftime("%Y-%m-%dT%H:%M:%S")


def relative_tree_path(path: pathlib.Path, root: pathlib.Path) -> Tuple[str, ...]:
    """Folder names of ``path`` (a file) relative to directory ``root``."""
    return tuple(path.parent.relative_to(root).parts)
