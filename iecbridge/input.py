from __future__ import annotations

import dataclasses
import logging
import pathlib
from typing import Callable, Dict, List, Optional, Tuple

from .config import ConversionSettings
from .typing import AnyPath
from .unit import ConversionError, Unit

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class LoadedUnits:
    """Units read from one input, and those that had to be skipped."""
    units: List[Unit] = dataclasses.field(default_factory=list)
    #: (identifier, reason) for each skipped unit.
    skipped: List[Tuple[str, ConversionError]] = dataclasses.field(default_factory=list)

    def add_skipped(self, identifier: str, error: ConversionError) -> None:
        logger.warning("Skipping %s: %s", identifier, error)
        self.skipped.append((identifier, error))


Handler = Callable[[pathlib.Path, ConversionSettings], LoadedUnits]


handlers: Dict[str, Handler] = {}


class UnsupportedFileFormatError(Exception):
    ...


def register_input_handler(extension: str, handler: Handler):
    handlers[extension.lower()] = handler


def get_input_format(filename: AnyPath, input_format: Optional[str] = None) -> str:
    """
    The handler key for ``filename``: the given format, ``st`` for
    directories, or the file extension.
    """
    if input_format is not None:
        return input_format.lower()
    filename = pathlib.Path(filename)
    if filename.is_dir():
        return "st"
    return filename.suffix.lower()


def load_file_by_name(
    filename: AnyPath,
    input_format: Optional[str] = None,
    settings: Optional[ConversionSettings] = None,
) -> LoadedUnits:
    """
    Load units using iecbridge's input handlers.

    Parameters
    ----------
    filename : pathlib.Path or str
        The file or source directory to load.
    input_format : str, optional
        Optionally specify the loader to use, if auto-detection based on
        filename is insufficient.  This may be either the loader name (e.g.,
        "plcopen") or an equivalent filename extension (e.g., ".xml").
    settings : ConversionSettings, optional
        Base path and strip depth used to map format-native paths to unit
        tree paths.

    Returns
    -------
    LoadedUnits
    """
    filename = pathlib.Path(filename).expanduser().resolve()
    extension = get_input_format(filename, input_format)
    try:
        handler = handlers[extension]
    except KeyError:
        raise UnsupportedFileFormatError(
            f"Unable to find a handler for {filename} based on file extension. "
            f"Supported extensions: {list(handlers)}"
        ) from None

    if settings is None:
        settings = ConversionSettings(source=filename)
    return handler(filename, settings)
