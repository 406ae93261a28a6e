from __future__ import annotations

import pathlib
from typing import Tuple, Union

try:
    from typing import Self
except ImportError:
    from typing_extensions import Self

__all__ = ["AnyPath", "Self", "TreePath"]


#: Support both pathlib paths and regular strings with AnyPath:
AnyPath = Union[str, pathlib.Path]
#: Folder names locating a unit in a project tree, outermost first.
TreePath = Tuple[str, ...]
