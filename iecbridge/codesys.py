"""
CoDeSys 3.5 project tree exports (``.export``).

The export is a serialized object archive: an ``ExportFile`` holding a
structured view whose ``EntryList`` is a flat list of entries.  Each entry is
either a folder or an object (global variable list, data type, POU), typed by
a well-known GUID.  Declarations and implementations are stored as text blobs
in nested text documents.  The folder hierarchy is carried twice: by parent
GUIDs and by each entry's ``Path`` array.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
import pathlib
from typing import List, Optional

import lxml.etree

from .config import CODESYS_BASE_PATH, ConversionSettings, strip_tree_path
from .folders import FolderNode, FolderTree
from .input import LoadedUnits, register_input_handler
from .output import OutputFile, register_output_handler
from .splitter import (is_wrapped_configuration, strip_end_keyword,
                       unwrap_configuration)
from .typing import TreePath
from .unit import (ImplementationKind, MalformedContainerError, SourceType,
                   UnrecognizedUnitError, Unit, classify_source)
from .util import (IdentifierAllocator, first_meaningful_line,
                   trim_blank_lines, tree_to_xml_source)
from .xmltree import Node, parse_xml

logger = logging.getLogger(__name__)

EXPORT_SUFFIX = ".export"
XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"
PROFILE_NAME = "CODESYS V3.5 SP19 Patch 6"
PROFILE_BLOB = (
    "AAEAAAD/////AQAAAAAAAAAMAgAAAAAAAAUBAAAAIVN5c3RlbS5Db2xsZWN0aW9ucy5IYXNo"
    "UGFibGUHAAAACkxvYWRGYWN0b3IHVmVyc2lvbghDb21wYXJlchBIYXNoQ29kZVByb3ZpZGVy"
    "CEhhc2hTaXplBEtleXMGVmFsdWVzAAADAAAFBQsIHFN5c3RlbS5Db2xsZWN0aW9ucy5JQ29t"
    "cGFyZXIkU3lzdGVtLkNvbGxlY3Rpb25zLklIYXNoQ29kZVByb3ZpZGVyCOxROD97AAAACQMA"
    "AAAJBAAAAA=="
)


class TypeGuid(str, enum.Enum):
    """Object type identifiers of entries in the export."""
    folder = "738bea1e-99bb-4f04-90bb-a7a567e74e3a"
    global_var_list = "ffbfa93a-b94d-45fc-a329-229860183b1d"
    data_type = "2db5746d-d284-4425-9f7f-2663a34b0ebc"
    pou = "6f9dac99-8de1-4efc-8465-68ac443b7d08"
    unknown = ""

    @classmethod
    def from_guid(cls, value: str) -> TypeGuid:
        value = value.strip().strip("{}").lower()
        for member in cls:
            if member.value and member.value == value:
                return member
        return cls.unknown

    @classmethod
    def for_kind(cls, kind: SourceType) -> TypeGuid:
        if kind == SourceType.var_global:
            return cls.global_var_list
        if kind == SourceType.data_type:
            return cls.data_type
        if kind.is_executable:
            return cls.pou
        raise ValueError(f"No CoDeSys object type for {kind}")


class ArchiveType(str, enum.Enum):
    """Type identifiers of the nested archive structures."""
    text_interface = "a9ed5b7e-75c5-4651-af16-d2c27e98cb94"
    text_implementation = "3b83b776-fb25-43b8-99f2-3c507c9143fc"
    text_document = "f3878285-8e4f-490b-bb1b-9acbb7eb04db"
    entry = "6198ad31-4b98-445c-927f-3258a0e82fe3"
    meta_object = "81297157-7ec9-45ce-845e-84cab2b88ade"
    top = "3daac5e4-660e-42e4-9cea-3711b98bfb63"
    properties = "2c41fa04-1834-41c1-816e-303c7aa2c05b"
    parent_objects = "fa2ee218-a39b-4b6d-b249-49dbddbd168a"
    build_properties = "24568a24-c491-472c-a21f-ee5d33859fab"
    parent_properties = "829a18f2-c514-4f6e-9634-1df173429203"
    special_func = "0db3d7bb-cde0-4416-9a7b-ce49a0124323"
    pou_level = "8e575c5b-1d37-49c6-941b-5c0ec7874787"

    @property
    def braced(self) -> str:
        return "{%s}" % self.value


# Parsing


@dataclasses.dataclass
class CodesysEntry:
    """The parts of one ``EntryList`` entry relevant to conversion."""
    name: str
    type_guid: TypeGuid
    raw_type_guid: str = ""
    path: TreePath = ()
    declaration: str = ""
    implementation: str = ""
    is_root: bool = False

    @property
    def implementation_kind(self) -> ImplementationKind:
        """Non-textual implementations are stored as XML fragments."""
        stripped = self.implementation.strip()
        if not stripped or stripped.startswith("<"):
            return ImplementationKind.unknown
        return ImplementationKind.structured_text

    @classmethod
    def from_node(cls, node: Node) -> CodesysEntry:
        meta = node.named_child("MetaObject") or Node(tag="Single")
        obj = node.named_child("Object")
        raw_type_guid = _named_text(meta, "TypeGuid")
        return cls(
            name=_named_text(meta, "Name"),
            type_guid=TypeGuid.from_guid(raw_type_guid),
            raw_type_guid=raw_type_guid,
            path=_path_array(node.named_child("Path")),
            declaration=_text_blob(obj, "Interface"),
            implementation=_text_blob(obj, "Implementation"),
            is_root=_named_text(node, "IsRoot").lower() == "true",
        )


def _named_text(node: Optional[Node], name: str) -> str:
    if node is None:
        return ""
    child = node.named_child(name)
    return child.text.strip() if child is not None else ""


def _path_array(node: Optional[Node]) -> TreePath:
    if node is None:
        return ()
    return tuple(child.text for child in node.children if child.text)


def _text_blob(obj: Optional[Node], part_name: str) -> str:
    """The text document contents stored below ``obj``'s ``part_name``."""
    if obj is None:
        return ""
    part = obj.named_child(part_name)
    if part is None:
        return ""
    for node in part.walk():
        if node.attr("Name") == "TextBlobForSerialisation":
            return node.text
    return ""


def find_entries(root: Node) -> List[Node]:
    """
    The entry nodes of an export document.

    Raises
    ------
    MalformedContainerError
        If the document is not a structured view export.
    """
    if root.tag != "ExportFile":
        raise MalformedContainerError(
            f"Expected an ExportFile document, found <{root.tag}>"
        )

    for view in root.children_named("StructuredView"):
        for single in view.children_named("Single"):
            entry_list = single.named_child("EntryList")
            if entry_list is not None:
                return entry_list.children_named("Single")

    raise MalformedContainerError("Export contains no EntryList")


def entry_to_unit(entry: CodesysEntry, settings: ConversionSettings) -> Optional[Unit]:
    """
    Build a unit from an entry.

    Returns
    -------
    Unit or None
        None for folders and entries without any text.

    Raises
    ------
    UnrecognizedUnitError
        If the entry's type GUID is not known, or a POU declaration does not
        start with a POU keyword.
    """
    if entry.type_guid == TypeGuid.folder:
        return None

    if entry.type_guid == TypeGuid.unknown:
        raise UnrecognizedUnitError(
            f"Unknown object type {entry.raw_type_guid!r}",
            identifier=entry.name,
        )

    declaration = trim_blank_lines(entry.declaration)
    if not declaration and not entry.implementation.strip():
        logger.debug("Ignoring empty object %s", entry.name)
        return None

    tree_path = strip_tree_path(entry.path, settings, CODESYS_BASE_PATH)

    if entry.type_guid == TypeGuid.global_var_list:
        if is_wrapped_configuration(declaration):
            declaration = "\n".join(unwrap_configuration(declaration))
        return Unit(
            name=entry.name,
            kind=SourceType.var_global,
            declaration=declaration,
            tree_path=tree_path,
        )

    if entry.type_guid == TypeGuid.data_type:
        return Unit(
            name=entry.name,
            kind=SourceType.data_type,
            declaration=declaration,
            tree_path=tree_path,
        )

    kind = classify_source(declaration)
    if not kind.is_executable:
        raise UnrecognizedUnitError(
            f"POU declaration starts with {first_meaningful_line(declaration)!r}",
            identifier=entry.name,
        )

    implementation_kind = entry.implementation_kind
    implementation = ""
    if implementation_kind.is_textual:
        implementation = strip_end_keyword(entry.implementation, kind)
    return Unit(
        name=entry.name,
        kind=kind,
        declaration=strip_end_keyword(declaration, kind),
        implementation=implementation,
        implementation_kind=implementation_kind,
        tree_path=tree_path,
    )


def parse_document(contents: bytes, settings: ConversionSettings) -> LoadedUnits:
    entries = find_entries(parse_xml(contents))
    if not entries:
        raise MalformedContainerError("No objects found in export")

    result = LoadedUnits()
    for node in entries:
        entry = CodesysEntry.from_node(node)
        try:
            unit = entry_to_unit(entry, settings)
        except UnrecognizedUnitError as ex:
            result.add_skipped(ex.identifier, ex)
            continue

        if unit is not None:
            logger.debug("Export object: %s %s", unit.kind, unit)
            result.units.append(unit)
    return result


def load(filename: pathlib.Path, settings: ConversionSettings) -> LoadedUnits:
    with open(filename, "rb") as fp:
        return parse_document(fp.read(), settings)


# Generation


def _element(parent: lxml.etree._Element, tag: str, text: Optional[str] = None,
             **attrib: str) -> lxml.etree._Element:
    element = lxml.etree.SubElement(parent, tag, attrib)
    if text is not None:
        element.text = text
    return element


def _single(parent: lxml.etree._Element, name: Optional[str], type_: str,
            text: Optional[str] = None, method: Optional[str] = None
            ) -> lxml.etree._Element:
    attrib = {}
    if name is not None:
        attrib["Name"] = name
    attrib["Type"] = type_
    if method is not None:
        attrib["Method"] = method
    element = lxml.etree.SubElement(parent, "Single", attrib)
    if text is not None:
        element.text = text
    return element


def _archive(parent: lxml.etree._Element, name: Optional[str],
             archive_type: str) -> lxml.etree._Element:
    """A nested ``IArchivable`` structure of the given type GUID."""
    return _single(parent, name, "{%s}" % archive_type, method="IArchivable")


class ExportWriter:
    """
    Builds the export document for a list of units.

    Parameters
    ----------
    settings : ConversionSettings
        Supplies the base path prefixed to every entry path.
    allocator : IdentifierAllocator
        Supplies object GUIDs and the entry timestamp.
    """

    def __init__(self, settings: ConversionSettings, allocator: IdentifierAllocator):
        self.allocator = allocator
        self.base_path = settings.get_base_path(CODESYS_BASE_PATH)
        self.timestamp = str(allocator.dotnet_ticks())
        self.view_guid = allocator.new_guid()
        self.parent_node_guid = allocator.new_guid()

    def build(self, units: List[Unit]) -> lxml.etree._Element:
        tree = FolderTree.from_units(units, allocator=self.allocator)
        root = lxml.etree.Element("ExportFile")
        view = _element(root, "StructuredView", Guid="{%s}" % self.view_guid)
        top = lxml.etree.SubElement(
            view,
            "Single",
            {
                XML_SPACE: "preserve",
                "Type": ArchiveType.top.braced,
                "Method": "IArchivable",
            },
        )
        _element(top, "Array", PROFILE_BLOB, Name="Profile", Type="byte")
        entries = _element(top, "List2", Name="EntryList")
        self.write_folder_contents(entries, tree.root)
        _single(top, "ProfileName", "string", PROFILE_NAME)
        return root

    def write_folder_contents(self, entries: lxml.etree._Element, folder: FolderNode):
        """Sub-folders first, each followed by its contents, then objects."""
        for child in folder.sorted_children():
            self.write_folder(entries, child)
            self.write_folder_contents(entries, child)
        for unit in folder.units:
            self.write_object(entries, unit, folder)

    def parent_guid(self, folder: Optional[FolderNode]) -> str:
        if folder is None or folder.is_root:
            return self.view_guid
        return folder.identifier

    def write_parent_properties(self, properties: lxml.etree._Element,
                                parent_guid: str):
        entry = _element(properties, "Single", Type=ArchiveType.entry.braced,
                         Method="IArchivable")
        _single(entry, "Key", "System.Guid", ArchiveType.parent_properties.value)
        value = _archive(entry, "Value", ArchiveType.parent_properties.value)
        parents = _archive(value, "ParentObjects", ArchiveType.parent_objects.value)
        parent_entry = _element(parents, "Single", Type=ArchiveType.entry.braced,
                                Method="IArchivable")
        _single(parent_entry, "Key", "System.Guid", self.view_guid)
        _single(parent_entry, "Value", "System.Guid", parent_guid)

    def write_build_properties(self, properties: lxml.etree._Element):
        entry = _element(properties, "Single", Type=ArchiveType.entry.braced,
                         Method="IArchivable")
        _single(entry, "Key", "System.Guid", ArchiveType.build_properties.value)
        value = _archive(entry, "Value", ArchiveType.build_properties.value)
        _single(value, "MemoryReserveForOnlineChange", "int", "0")
        _single(value, "ExcludeFromBuild", "bool", "False")
        _single(value, "External", "bool", "False")
        _single(value, "EnableSystemCall", "bool", "False")
        _single(value, "CompilerDefines", "string", "")
        _single(value, "LinkAlways", "bool", "False")
        _element(value, "Array", Name="Undefines", Type="string")

    def write_meta_object(self, entry: lxml.etree._Element, *, guid: str,
                          parent_guid: str, name: str, type_guid: TypeGuid,
                          embedded: List[ArchiveType], build_properties: bool):
        meta = _archive(entry, "MetaObject", ArchiveType.meta_object.value)
        _single(meta, "Guid", "System.Guid", guid)
        _single(meta, "ParentGuid", "System.Guid", parent_guid)
        _single(meta, "Name", "string", name)
        properties = _archive(meta, "Properties", ArchiveType.properties.value)
        if build_properties:
            self.write_build_properties(properties)
        self.write_parent_properties(properties, parent_guid)
        _single(meta, "TypeGuid", "System.Guid", type_guid.value)
        if embedded:
            guids = _element(meta, "Array", Name="EmbeddedTypeGuids",
                             Type="System.Guid")
            for archive_type in embedded:
                _single(guids, None, "System.Guid", archive_type.value)
        else:
            _element(meta, "Null", Name="EmbeddedTypeGuids")
        _single(meta, "Timestamp", "long", self.timestamp)

    def write_location(self, entry: lxml.etree._Element, path: TreePath):
        _single(entry, "ParentSVNodeGuid", "System.Guid", self.parent_node_guid)
        path_array = _element(entry, "Array", Name="Path", Type="string")
        for part in (*self.base_path, *path):
            _single(path_array, None, "string", part)
        _single(entry, "Index", "int", "-1")

    def write_folder(self, entries: lxml.etree._Element, folder: FolderNode):
        entry = _archive(entries, None, ArchiveType.entry.value)
        _single(entry, "IsRoot", "bool", "True")
        self.write_meta_object(
            entry,
            guid=folder.identifier,
            parent_guid=self.parent_guid(folder.parent),
            name=folder.name,
            type_guid=TypeGuid.folder,
            embedded=[],
            build_properties=False,
        )
        obj = _archive(entry, "Object", TypeGuid.folder.value)
        _single(obj, "StructuredViewGuid", "System.Guid", self.view_guid)
        self.write_location(entry, folder.path)

    def write_text_document(self, parent: lxml.etree._Element, text: str,
                            line_ids: str):
        document = _archive(parent, "TextDocument", ArchiveType.text_document.value)
        _single(document, "TextBlobForSerialisation", "string", text)
        _single(document, "LineInfoPersistence", "string", line_ids)

    def write_object(self, entries: lxml.etree._Element, unit: Unit,
                     folder: FolderNode):
        guid = self.allocator.new_guid()
        type_guid = TypeGuid.for_kind(unit.kind)
        embedded = [ArchiveType.text_interface]
        if type_guid == TypeGuid.pou:
            embedded.append(ArchiveType.text_implementation)

        entry = _archive(entries, None, ArchiveType.entry.value)
        _single(entry, "IsRoot", "bool", "False")
        self.write_meta_object(
            entry,
            guid=guid,
            parent_guid=self.parent_guid(folder),
            name=unit.name,
            type_guid=type_guid,
            embedded=embedded,
            build_properties=True,
        )

        declaration_ids = f"{guid}_{unit.name}_Decl_LineIds"
        obj = _archive(entry, "Object", type_guid.value)
        if type_guid == TypeGuid.global_var_list:
            interface = _archive(obj, "Interface", ArchiveType.text_interface.value)
            self.write_text_document(interface, unit.declaration, declaration_ids)
            _element(obj, "Null", Name="NetVarProperties")
            _single(obj, "ParameterList", "bool", "False")
            _single(obj, "AddAttributeSubsequent", "bool", "False")
        elif type_guid == TypeGuid.data_type:
            interface = _archive(obj, "Interface", ArchiveType.text_interface.value)
            self.write_text_document(interface, unit.declaration, declaration_ids)
            _single(obj, "UniqueIdGenerator", "string", "0")
        else:
            _single(obj, "SpecialFunc", ArchiveType.special_func.braced, "None")
            implementation = _archive(
                obj, "Implementation", ArchiveType.text_implementation.value
            )
            self.write_text_document(
                implementation,
                unit.implementation,
                f"{guid}_{unit.name}_Impl_LineIds",
            )
            interface = _archive(obj, "Interface", ArchiveType.text_interface.value)
            self.write_text_document(
                interface,
                strip_end_keyword(unit.declaration, unit.kind),
                declaration_ids,
            )
            _single(obj, "UniqueIdGenerator", "string", "0")
            _single(obj, "POULevel", ArchiveType.pou_level.braced, "Standard")
            _element(obj, "List", Name="ChildObjectGuids",
                     Type="System.Collections.ArrayList")
            _single(obj, "AddAttributeSubsequent", "bool", "False")

        self.write_location(entry, folder.path)


def render_document(
    units: List[Unit],
    settings: ConversionSettings,
    allocator: IdentifierAllocator,
) -> bytes:
    root = ExportWriter(settings, allocator).build(units)
    return tree_to_xml_source(root)


def save(
    units: List[Unit],
    settings: ConversionSettings,
    allocator: Optional[IdentifierAllocator] = None,
) -> List[OutputFile]:
    if allocator is None:
        allocator = IdentifierAllocator()
    name = settings.get_output_name("codesys")
    return [
        OutputFile(
            path=(f"{name}{EXPORT_SUFFIX}", ),
            contents=render_document(units, settings, allocator),
            units=list(units),
        )
    ]


def _register():
    """Register the CoDeSys 3.5 export handlers."""
    register_input_handler("codesys", load)
    register_input_handler(EXPORT_SUFFIX, load)

    register_output_handler("codesys", save)
