"""
A generic, schema-agnostic view of an XML document.

The CoDeSys export and PLCOpen schemas vary between tool versions, with
wrapper elements appearing and disappearing.  Rather than binding to one
schema, documents are loaded into :class:`Node` trees and queried by local
element name and attribute values.
"""
from __future__ import annotations

import dataclasses
from typing import Dict, Iterator, List, Optional, Union

import lxml.etree

from .unit import MalformedContainerError


@dataclasses.dataclass
class Node:
    """
    One XML element.

    Attributes
    ----------
    tag : str
        The local element name (namespace removed).
    attrib : dict
        Attributes, keyed by local name.
    text : str
        The element's own text content.
    children : list of Node
        Child elements, in document order.
    namespace : str, optional
        The element namespace URI.
    """
    tag: str
    attrib: Dict[str, str] = dataclasses.field(default_factory=dict)
    text: str = ""
    children: List[Node] = dataclasses.field(default_factory=list)
    namespace: Optional[str] = None
    tail: str = ""

    @classmethod
    def from_element(cls, element: lxml.etree._Element) -> Node:
        qname = lxml.etree.QName(element)
        return cls(
            tag=qname.localname,
            namespace=qname.namespace,
            attrib={
                lxml.etree.QName(key).localname: value
                for key, value in element.attrib.items()
            },
            text=element.text or "",
            tail=element.tail or "",
            children=[
                cls.from_element(child)
                for child in element
                # Skip comments and processing instructions
                if isinstance(child.tag, str)
            ],
        )

    def attr(self, name: str, default: str = "") -> str:
        return self.attrib.get(name, default)

    def child(self, tag: str) -> Optional[Node]:
        """The first child element named ``tag``."""
        for child in self.children:
            if child.tag == tag:
                return child
        return None

    def children_named(self, tag: str) -> List[Node]:
        return [child for child in self.children if child.tag == tag]

    def named_child(self, name: str) -> Optional[Node]:
        """The first child element whose ``Name`` attribute is ``name``."""
        for child in self.children:
            if child.attrib.get("Name") == name:
                return child
        return None

    def find(self, path: str) -> Optional[Node]:
        """
        Follow a ``/``-separated path of local element names.

        Parameters
        ----------
        path : str
            For example, ``"types/pous"``.
        """
        node: Optional[Node] = self
        for part in path.split("/"):
            if node is None:
                return None
            node = node.child(part)
        return node

    def find_all(self, path: str) -> List[Node]:
        """All elements matching the final part of ``path``."""
        parent_path, _, tag = path.rpartition("/")
        parent = self.find(parent_path) if parent_path else self
        if parent is None:
            return []
        return parent.children_named(tag)

    def walk(self) -> Iterator[Node]:
        """This node and all descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def text_deep(self) -> str:
        """All text content of this node and its descendants, concatenated."""
        return self.text + "".join(
            child.text_deep() + child.tail for child in self.children
        )


def parse_xml(contents: Union[str, bytes]) -> Node:
    """
    Parse an XML document into a :class:`Node` tree.

    Raises
    ------
    MalformedContainerError
        If the document is not well-formed XML.
    """
    if isinstance(contents, str):
        contents = contents.encode("utf-8")

    parser = lxml.etree.XMLParser(resolve_entities=False, huge_tree=True)
    try:
        root = lxml.etree.fromstring(contents, parser=parser)
    except lxml.etree.XMLSyntaxError as ex:
        raise MalformedContainerError(f"Unable to parse XML document: {ex}") from ex
    return Node.from_element(root)
