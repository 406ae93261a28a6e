import pathlib

from . import codesys, exp, plcopen, source
from .config import ConversionSettings
from .convert import ConversionReport, convert
from .input import LoadedUnits, load_file_by_name
from .output import OutputFile, get_handler_by_name
from .unit import (ConversionError, ImplementationKind, MalformedContainerError,
                   NameCollisionError, SourceType, UnrecognizedUnitError, Unit,
                   classify)
from .util import IdentifierAllocator

__version__ = "0.1.0"

MODULE_PATH = pathlib.Path(__file__).parent
del pathlib

GRAMMAR_FILENAME = MODULE_PATH / "declarations.lark"

source._register()
exp._register()
codesys._register()
plcopen._register()

__all__ = [
    "ConversionError",
    "ConversionReport",
    "ConversionSettings",
    "GRAMMAR_FILENAME",
    "IdentifierAllocator",
    "ImplementationKind",
    "LoadedUnits",
    "MalformedContainerError",
    "NameCollisionError",
    "OutputFile",
    "SourceType",
    "Unit",
    "UnrecognizedUnitError",
    "classify",
    "convert",
    "get_handler_by_name",
    "load_file_by_name",
]
