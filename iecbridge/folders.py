from __future__ import annotations

import dataclasses
from typing import Dict, Iterator, List, Optional

from .typing import TreePath
from .unit import Unit
from .util import IdentifierAllocator


@dataclasses.dataclass
class FolderNode:
    """A folder in a generated project tree."""
    name: str
    parent: Optional[FolderNode] = None
    identifier: str = ""
    children: Dict[str, FolderNode] = dataclasses.field(default_factory=dict)
    units: List[Unit] = dataclasses.field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"<FolderNode path={self.path!r} children={list(self.children)} "
            f"units={[unit.name for unit in self.units]}>"
        )

    @property
    def path(self) -> TreePath:
        """Folder names from the root (exclusive) down to this folder."""
        if self.parent is None:
            return ()
        return (*self.parent.path, self.name)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def sorted_children(self) -> List[FolderNode]:
        return [self.children[name] for name in sorted(self.children)]

    def walk(self) -> Iterator[FolderNode]:
        """Sub-folders depth-first, each followed by its own sub-folders."""
        for child in self.sorted_children():
            yield child
            yield from child.walk()


class FolderTree:
    """
    Folders of one generated project, built from unit tree paths.

    Shared path prefixes map to the same folder.  Folder identifiers come
    from the run's :class:`IdentifierAllocator`, if one is given.
    """

    def __init__(self, allocator: Optional[IdentifierAllocator] = None):
        self.allocator = allocator
        self.root = FolderNode(name="", identifier=self._new_identifier())

    def _new_identifier(self) -> str:
        if self.allocator is None:
            return ""
        return self.allocator.new_guid()

    @classmethod
    def from_units(
        cls, units: List[Unit], allocator: Optional[IdentifierAllocator] = None
    ) -> FolderTree:
        tree = cls(allocator=allocator)
        for unit in units:
            tree.add_unit(unit)
        return tree

    def get_folder(self, path: TreePath) -> FolderNode:
        """Get the folder at ``path``, creating it and its parents as needed."""
        node = self.root
        for name in path:
            if name not in node.children:
                node.children[name] = FolderNode(
                    name=name,
                    parent=node,
                    identifier=self._new_identifier(),
                )
            node = node.children[name]
        return node

    def add_unit(self, unit: Unit) -> FolderNode:
        folder = self.get_folder(unit.tree_path)
        folder.units.append(unit)
        return folder

    def walk(self) -> Iterator[FolderNode]:
        """All folders below the root, depth-first in sorted order."""
        yield from self.root.walk()
