from __future__ import annotations

import dataclasses
import logging
import pathlib
from typing import Callable, Dict, List, Tuple, Union

from .config import ConversionSettings
from .unit import Unit
from .util import IdentifierAllocator

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class OutputFile:
    #: Path components relative to the output root.
    path: Tuple[str, ...]
    #: The file contents to write.
    contents: Union[str, bytes]
    #: The units written to this file.
    units: List[Unit] = dataclasses.field(default_factory=list)
    #: Encoding for text contents.
    encoding: str = "utf-8"

    def encode(self) -> bytes:
        """The file contents as bytes; unencodable characters become ``?``."""
        if isinstance(self.contents, bytes):
            return self.contents
        try:
            return self.contents.encode(self.encoding)
        except UnicodeEncodeError as ex:
            logger.warning(
                "%s: characters not representable in %s were replaced (%s)",
                "/".join(self.path), self.encoding, ex.reason,
            )
            return self.contents.encode(self.encoding, errors="replace")

    def write_to(self, root: pathlib.Path, overwrite: bool = True) -> pathlib.Path:
        """
        Write the file below ``root``, creating directories as needed.

        Raises
        ------
        FileExistsError
            If the file exists and ``overwrite`` is not set.
        """
        filename = root.joinpath(*self.path)
        if filename.exists() and not overwrite:
            raise FileExistsError(
                f"File exists: {filename} (run without --no-overwrite to replace it)"
            )

        filename.parent.mkdir(parents=True, exist_ok=True)
        # Line endings are already final; write bytes as-is
        contents = self.encode()

        with open(filename, "wb") as fp:
            fp.write(contents)
        logger.debug("Wrote %s (%d bytes)", filename, len(contents))
        return filename


OutputHandler = Callable[
    [
        # The units to write, in order.
        List[Unit],
        # Output naming and layout options.
        ConversionSettings,
        # Identifiers and timestamps for this run.
        IdentifierAllocator,
    ],
    # The files to be written, relative to the output root.
    List[OutputFile],
]

handlers: Dict[str, OutputHandler] = {}


def register_output_handler(name: str, handler: OutputHandler):
    handlers[name.lower()] = handler


def get_handler_by_name(name: str) -> OutputHandler:
    try:
        return handlers[name.lower()]
    except KeyError:
        available = ", ".join(sorted(handlers))
        raise ValueError(
            f"Unknown output handler {name!r}. "
            f"Available handlers include: {available}"
        ) from None
