"""
Conversion settings shared by every format adapter.

Defaults may be overridden by the environment:

* ``IECBRIDGE_BASE_PATH``: comma-separated CoDeSys project base path,
  e.g. ``Device,PLC Logic,Application``.
"""
from __future__ import annotations

import dataclasses
import os
import pathlib
from typing import Optional, Tuple

from .typing import TreePath


def _path_from_environment(name: str, default: str) -> TreePath:
    value = os.environ.get(name, default)
    return tuple(part.strip() for part in value.split(",") if part.strip())


#: Folders above the application objects in a CoDeSys 3.5 project tree.
CODESYS_BASE_PATH = _path_from_environment(
    "IECBRIDGE_BASE_PATH", "Device,PLC Logic,Application"
)

#: Company name written to PLCOpen file headers.
DEFAULT_COMPANY_NAME = "iecbridge"

#: Output document base names, per format.
DEFAULT_OUTPUT_NAMES = {
    "exp": "export",
    "codesys": "export",
    "plcopen": "plcopen_export",
}


def parse_base_path(value: Optional[str]) -> Optional[TreePath]:
    """Parse a comma-separated base path option; None if not given."""
    if value is None:
        return None
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclasses.dataclass
class ConversionSettings:
    """
    Options for a single conversion run.

    Attributes
    ----------
    source : pathlib.Path, optional
        The input file or source directory.  A single file puts source tree
        handling into single-file mode.
    output : pathlib.Path
        The output root directory.
    name : str, optional
        Base name of the output document, without extension.
    base_path : tuple of str, optional
        Tree base path prepended on export and removed on import.  None
        selects the format's default.
    strip : int, optional
        Number of leading path segments removed on import, overriding the
        length of the base path.
    flat : bool
        Write all units to the output root instead of to sub-directories.
    overwrite : bool
        Replace existing output files.
    company : str
        Company name for generated PLCOpen file headers.
    """
    source: Optional[pathlib.Path] = None
    output: pathlib.Path = pathlib.Path(".")
    name: Optional[str] = None
    base_path: Optional[TreePath] = None
    strip: Optional[int] = None
    flat: bool = False
    overwrite: bool = True
    company: str = DEFAULT_COMPANY_NAME

    @property
    def single_file(self) -> bool:
        return self.source is not None and self.source.is_file()

    def get_base_path(self, default: TreePath = ()) -> TreePath:
        if self.base_path is None:
            return tuple(default)
        return tuple(self.base_path)

    def get_strip_depth(self, default_base_path: TreePath = ()) -> int:
        """Leading path segments to strip on import."""
        if self.strip is not None:
            return self.strip
        return len(self.get_base_path(default_base_path))

    def get_output_name(self, format_name: str) -> str:
        if self.name:
            return self.name
        return DEFAULT_OUTPUT_NAMES.get(format_name, "export")


def strip_tree_path(
    path: Tuple[str, ...],
    settings: ConversionSettings,
    default_base_path: TreePath = (),
) -> TreePath:
    """
    Remove the project base path from a format-native path.

    An explicit strip depth removes that many leading segments.  Otherwise
    the base path is removed if ``path`` starts with it.
    """
    if settings.strip is not None:
        return tuple(path[settings.strip:])

    base_path = settings.get_base_path(default_base_path)
    if base_path and tuple(path[: len(base_path)]) == base_path:
        return tuple(path[len(base_path):])
    return tuple(path)
