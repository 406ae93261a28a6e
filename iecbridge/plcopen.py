"""
PLCOpen TC6 XML (``http://www.plcopen.org/xml/tc6_0200``).

Generated documents carry every unit twice: as structured PLCOpen XML
(variable lists, data type definitions, ST bodies) for standards-only
consumers, and as a verbatim ``InterfaceAsPlainText`` extension for lossless
re-import.  The standard schema has no notion of folders; the project tree is
carried in a ``ProjectStructure`` extension keyed by object id.

On import, the plain text extension is preferred.  Declarations are
reconstructed from the structured XML only where it is missing.
"""
from __future__ import annotations

import dataclasses
import logging
import pathlib
from typing import Dict, List, Optional, Tuple

import lxml.etree

from .config import ConversionSettings, strip_tree_path
from .declarations import (AliasDeclaration, ArrayType, DataTypeDeclaration,
                           EnumerationDeclaration, NamedType,
                           StructureDeclaration, StringType,
                           TypeSpecification, VariableBlock,
                           VariableDeclaration, parse_data_types,
                           parse_pou_header, parse_type_specification,
                           parse_var_blocks)
from .folders import FolderNode, FolderTree
from .input import LoadedUnits, register_input_handler
from .output import OutputFile, register_output_handler
from .splitter import (is_wrapped_configuration, strip_end_keyword,
                       unwrap_configuration)
from .typing import TreePath
from .unit import (ImplementationKind, MalformedContainerError, SourceType,
                   UnrecognizedUnitError, Unit, classify_source)
from .util import IdentifierAllocator, trim_blank_lines, tree_to_xml_source
from .xmltree import Node, parse_xml

logger = logging.getLogger(__name__)

XML_SUFFIX = ".xml"
TC6_NAMESPACE = "http://www.plcopen.org/xml/tc6_0200"
XHTML_NAMESPACE = "http://www.w3.org/1999/xhtml"

PRODUCT_NAME = "CODESYS"
PRODUCT_VERSION = "CODESYS V3.5 SP19 Patch 6"

DATA_GLOBAL_VARS = "http://www.3s-software.com/plcopenxml/globalvars"
DATA_OBJECT_ID = "http://www.3s-software.com/plcopenxml/objectid"
DATA_PLAIN_TEXT = "http://www.3s-software.com/plcopenxml/interfaceasplaintext"
DATA_PROJECT_STRUCTURE = "http://www.3s-software.com/plcopenxml/projectstructure"
DATA_PROJECT_INFORMATION = "http://www.3s-software.com/plcopenxml/projectinformation"

DEFAULT_GLOBAL_VARS_NAME = "GlobalVars"
DEFAULT_RETURN_TYPE = "BOOL"

#: Elementary types, written as empty elements of the same name.
ELEMENTARY_TYPES = frozenset(
    {
        "BOOL", "BYTE", "WORD", "DWORD", "LWORD",
        "SINT", "INT", "DINT", "LINT",
        "USINT", "UINT", "UDINT", "ULINT",
        "REAL", "LREAL",
        "TIME", "DATE", "TOD", "DT", "LTIME",
        "TIME_OF_DAY", "DATE_AND_TIME",
    }
)

POU_TYPES = {
    SourceType.function: "function",
    SourceType.function_block: "functionBlock",
    SourceType.program: "program",
}

#: PLCOpen interface variable lists and their declaration block keywords,
#: in reconstruction order.
VARIABLE_LISTS = (
    ("inputVars", "VAR_INPUT"),
    ("outputVars", "VAR_OUTPUT"),
    ("inOutVars", "VAR_IN_OUT"),
    ("localVars", "VAR"),
    ("tempVars", "VAR_TEMP"),
    ("externalVars", "VAR_EXTERNAL"),
)

BODY_LANGUAGES = {
    "FBD": ImplementationKind.fbd,
    "LD": ImplementationKind.ladder,
    "SFC": ImplementationKind.sfc,
    "IL": ImplementationKind.il,
}

#: Variable list qualifiers and their attribute names.
QUALIFIER_ATTRIBUTES = (
    ("CONSTANT", "constant"),
    ("RETAIN", "retain"),
    ("NON_RETAIN", "nonretain"),
    ("PERSISTENT", "persistent"),
)


# Parsing


def _data_nodes(node: Optional[Node], name_fragment: str) -> List[Node]:
    """``addData/data`` children of ``node`` whose name contains the fragment."""
    if node is None:
        return []
    add_data = node.child("addData")
    if add_data is None:
        return []
    return [
        data for data in add_data.children_named("data")
        if name_fragment in data.attr("name").lower()
    ]


def get_plain_text(node: Node) -> Optional[str]:
    """The ``InterfaceAsPlainText`` extension text of ``node``, if any."""
    for data in _data_nodes(node, "interfaceasplaintext"):
        plain_text = data.child("InterfaceAsPlainText")
        xhtml = plain_text.child("xhtml") if plain_text is not None else None
        if xhtml is not None:
            text = trim_blank_lines(xhtml.text_deep())
            if text:
                return text
    return None


def get_object_id(node: Node) -> Optional[str]:
    for data in _data_nodes(node, "objectid"):
        object_id = data.child("ObjectId")
        if object_id is not None and object_id.text.strip():
            return object_id.text.strip()
    return None


def type_name_from_node(type_node: Optional[Node]) -> str:
    """
    Render a PLCOpen type element (``type``, ``baseType``, ``returnType``)
    as a Structured Text type specification.
    """
    if type_node is None:
        return DEFAULT_RETURN_TYPE

    for child in type_node.children:
        tag = child.tag
        upper = tag.upper()
        if upper in ELEMENTARY_TYPES:
            return upper
        if tag in ("string", "wstring"):
            length = child.attr("length")
            return f"{upper}({length})" if length else upper
        if tag == "derived":
            return child.attr("name")
        if tag == "array":
            dimensions = ", ".join(
                f"{dim.attr('lower')}..{dim.attr('upper')}"
                for dim in child.children_named("dimension")
            )
            base_type = type_name_from_node(child.child("baseType"))
            return f"ARRAY[{dimensions}] OF {base_type}"
        if tag == "pointer":
            return f"POINTER TO {type_name_from_node(child.child('baseType'))}"
        if tag in ("subrangeSigned", "subrangeUnsigned"):
            return type_name_from_node(child.child("baseType"))
        if tag in ("struct", "enum"):
            return upper
    return DEFAULT_RETURN_TYPE


def initial_value_from_node(value_node: Optional[Node]) -> Optional[str]:
    """Render ``initialValue`` (or one of its value elements) as text."""
    if value_node is None:
        return None

    if value_node.tag in ("initialValue", "value"):
        for child in value_node.children:
            result = initial_value_from_node(child)
            if result is not None:
                repetition = value_node.attr("repetitionValue")
                if repetition:
                    return f"{repetition}({result})"
                member = value_node.attr("member")
                if member:
                    return f"{member} := {result}"
                return result
        return None

    if value_node.tag == "simpleValue":
        return value_node.attr("value")
    if value_node.tag == "arrayValue":
        items = [initial_value_from_node(item) for item in value_node.children_named("value")]
        return "[" + ", ".join(item for item in items if item is not None) + "]"
    if value_node.tag == "structValue":
        items = [initial_value_from_node(item) for item in value_node.children_named("value")]
        return "(" + ", ".join(item for item in items if item is not None) + ")"
    return None


def variable_line(variable: Node) -> str:
    """One ``name [AT addr] : type [:= init];[ // doc]`` declaration line."""
    name = variable.attr("name")
    address = variable.attr("address")
    if address:
        name = f"{name} AT {address}"

    line = f"    {name} : {type_name_from_node(variable.child('type'))}"
    initial_value = initial_value_from_node(variable.child("initialValue"))
    if initial_value:
        line = f"{line} := {initial_value}"
    line = f"{line};"

    documentation = variable.child("documentation")
    if documentation is not None:
        xhtml = documentation.child("xhtml")
        comment = " ".join((xhtml or documentation).text_deep().split())
        if comment:
            line = f"{line} // {comment}"
    return line


def variable_block_header(keyword: str, var_list: Node) -> str:
    qualifiers = [
        qualifier for qualifier, attribute in QUALIFIER_ATTRIBUTES
        if var_list.attr(attribute).lower() == "true"
    ]
    return " ".join((keyword, *qualifiers))


def reconstruct_pou_declaration(pou: Node, kind: SourceType) -> str:
    name = pou.attr("name")
    interface = pou.child("interface")
    if kind == SourceType.function:
        return_type = DEFAULT_RETURN_TYPE
        if interface is not None and interface.child("returnType") is not None:
            return_type = type_name_from_node(interface.child("returnType"))
        lines = [f"FUNCTION {name} : {return_type}"]
    else:
        lines = [f"{kind.keyword} {name}"]

    if interface is None:
        return "\n".join(lines)

    for tag, keyword in VARIABLE_LISTS:
        for var_list in interface.children_named(tag):
            variables = var_list.children_named("variable")
            if not variables:
                continue
            lines.append(variable_block_header(keyword, var_list))
            lines.extend(variable_line(variable) for variable in variables)
            lines.append("END_VAR")
    return "\n".join(lines)


def reconstruct_data_type(data_type: Node) -> str:
    name = data_type.attr("name")
    base_type = data_type.child("baseType")
    if base_type is None or not base_type.children:
        return f"TYPE {name} :\n    // Unknown type\nEND_TYPE"

    struct = base_type.child("struct")
    if struct is not None:
        lines = [f"TYPE {name} :", "STRUCT"]
        lines.extend(variable_line(member) for member in struct.children_named("variable"))
        lines.extend(("END_STRUCT", "END_TYPE"))
        return "\n".join(lines)

    enum = base_type.child("enum")
    if enum is not None:
        values = enum.child("values")
        items = values.children_named("value") if values is not None else []
        lines = [f"TYPE {name} :", "("]
        for idx, item in enumerate(items):
            line = f"    {item.attr('name')}"
            value = item.attr("value") or initial_value_from_node(item.child("simpleValue"))
            if value:
                line = f"{line} := {value}"
            if idx < len(items) - 1:
                line = f"{line},"
            lines.append(line)

        closing = ")"
        if enum.child("baseType") is not None:
            closing = f") {type_name_from_node(enum.child('baseType'))}"
        initial_value = initial_value_from_node(data_type.child("initialValue"))
        if initial_value:
            closing = f"{closing} := {initial_value}"
        lines.extend((f"{closing};", "END_TYPE"))
        return "\n".join(lines)

    alias = f"TYPE {name} : {type_name_from_node(base_type)}"
    initial_value = initial_value_from_node(data_type.child("initialValue"))
    if initial_value:
        alias = f"{alias} := {initial_value}"
    return f"{alias};\nEND_TYPE"


def reconstruct_global_vars(global_vars: Node) -> str:
    lines = [variable_block_header("VAR_GLOBAL", global_vars)]
    lines.extend(variable_line(variable) for variable in global_vars.children_named("variable"))
    lines.append("END_VAR")
    return "\n".join(lines)


def read_body(pou: Node) -> Tuple[str, ImplementationKind]:
    """The body text and language of a POU."""
    body = pou.child("body")
    if body is None:
        return "", ImplementationKind.unknown

    st = body.child("ST")
    if st is not None:
        xhtml = st.child("xhtml")
        text = trim_blank_lines((xhtml or st).text_deep())
        if text:
            return text, ImplementationKind.structured_text
        return "", ImplementationKind.unknown

    for tag, kind in BODY_LANGUAGES.items():
        if body.child(tag) is not None:
            return "", kind
    return "", ImplementationKind.unknown


@dataclasses.dataclass
class ProjectStructure:
    """Folder paths of objects, from the project structure extension."""
    by_object_id: Dict[str, TreePath] = dataclasses.field(default_factory=dict)
    by_name: Dict[str, TreePath] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_project(cls, project: Node) -> ProjectStructure:
        structure = cls()
        for data in _data_nodes(project, "projectstructure"):
            root = data.child("ProjectStructure")
            if root is not None:
                structure._walk(root, ())
        return structure

    def _walk(self, node: Node, path: TreePath):
        for child in node.children:
            if child.tag == "Folder":
                self._walk(child, (*path, child.attr("Name")))
            elif child.tag == "Object":
                if child.attr("ObjectId"):
                    self.by_object_id[child.attr("ObjectId")] = path
                self.by_name.setdefault(child.attr("Name"), path)
                # Objects may hold child objects (methods, actions)
                self._walk(child, path)

    def get_path(self, name: str, object_id: Optional[str]) -> TreePath:
        if object_id and object_id in self.by_object_id:
            return self.by_object_id[object_id]
        return self.by_name.get(name, ())


class ProjectReader:
    """
    Collects units from a parsed PLCOpen ``project``.

    Parameters
    ----------
    project : Node
        The document root.
    settings : ConversionSettings
        Used for strip depth and base path removal on folder paths.
    """

    def __init__(self, project: Node, settings: ConversionSettings):
        if project.tag != "project":
            raise MalformedContainerError(
                f"Expected a PLCOpen project document, found <{project.tag}>"
            )
        self.project = project
        self.settings = settings
        self.structure = ProjectStructure.from_project(project)
        self.result = LoadedUnits()

    def tree_path(self, node: Node, name: str) -> TreePath:
        path = self.structure.get_path(name, get_object_id(node))
        return strip_tree_path(path, self.settings)

    def read(self) -> LoadedUnits:
        pou_nodes = self.project.find_all("types/pous/pou")
        seen = {pou.attr("name") for pou in pou_nodes}
        for pou in self.find_extension_pous(self.project):
            if pou.attr("name") not in seen:
                seen.add(pou.attr("name"))
                pou_nodes.append(pou)

        data_types = self.project.find_all("types/dataTypes/dataType")
        global_vars = self.find_global_vars()
        if not (pou_nodes or data_types or global_vars):
            raise MalformedContainerError("No objects found in PLCOpen project")

        for pou in pou_nodes:
            self._add(self.read_pou, pou)
        for data_type in data_types:
            self._add(self.read_data_type, data_type)
        for node in global_vars:
            self._add(self.read_global_vars, node)
        return self.result

    def _add(self, reader, node: Node):
        try:
            unit = reader(node)
        except UnrecognizedUnitError as ex:
            self.result.add_skipped(ex.identifier, ex)
            return
        logger.debug("PLCOpen object: %s %s", unit.kind, unit)
        self.result.units.append(unit)

    def find_extension_pous(self, node: Node) -> List[Node]:
        """POUs stored in ``addData``, also below configurations and resources."""
        pous = []
        add_data = node.child("addData")
        if add_data is not None:
            for data in add_data.children_named("data"):
                pous.extend(data.children_named("pou"))
                resource = data.child("resource")
                if resource is not None:
                    pous.extend(self.find_extension_pous(resource))

        for child in node.children:
            if child.tag in ("configuration", "resource"):
                pous.extend(self.find_extension_pous(child))
        return pous

    def find_global_vars(self) -> List[Node]:
        """Global variable lists in instances and in the root ``addData``."""
        found: List[Node] = []

        def collect(node: Node):
            for child in node.children:
                if child.tag == "globalVars":
                    found.append(child)
                elif child.tag in ("configuration", "resource"):
                    collect(child)

        configurations = self.project.find("instances/configurations")
        if configurations is not None:
            collect(configurations)

        add_data = self.project.child("addData")
        if add_data is not None:
            for data in add_data.children_named("data"):
                collect(data)
        return found

    def read_pou(self, pou: Node) -> Unit:
        name = pou.attr("name")
        pou_type = pou.attr("pouType")
        kinds = {value: key for key, value in POU_TYPES.items()}
        plain_text = get_plain_text(pou)
        if plain_text is not None:
            kind = classify_source(plain_text)
            if not kind.is_executable:
                kind = kinds.get(pou_type, SourceType.unknown)
            declaration = plain_text
        else:
            kind = kinds.get(pou_type, SourceType.unknown)
            declaration = (
                reconstruct_pou_declaration(pou, kind) if kind.is_executable else ""
            )

        if not kind.is_executable:
            raise UnrecognizedUnitError(
                f"Unsupported POU type {pou_type!r}", identifier=name
            )

        implementation, implementation_kind = read_body(pou)
        return Unit(
            name=name,
            kind=kind,
            declaration=strip_end_keyword(declaration, kind),
            implementation=strip_end_keyword(implementation, kind),
            implementation_kind=implementation_kind,
            tree_path=self.tree_path(pou, name),
        )

    def read_data_type(self, data_type: Node) -> Unit:
        name = data_type.attr("name")
        if not name:
            raise UnrecognizedUnitError("Data type without a name", identifier="dataType")
        declaration = get_plain_text(data_type) or reconstruct_data_type(data_type)
        return Unit(
            name=name,
            kind=SourceType.data_type,
            declaration=declaration,
            tree_path=self.tree_path(data_type, name),
        )

    def read_global_vars(self, global_vars: Node) -> Unit:
        name = global_vars.attr("name") or DEFAULT_GLOBAL_VARS_NAME
        declaration = get_plain_text(global_vars)
        if declaration is None:
            declaration = reconstruct_global_vars(global_vars)
        elif is_wrapped_configuration(declaration):
            declaration = "\n".join(unwrap_configuration(declaration))
        return Unit(
            name=name,
            kind=SourceType.var_global,
            declaration=declaration,
            tree_path=self.tree_path(global_vars, name),
        )


def parse_document(contents: bytes, settings: ConversionSettings) -> LoadedUnits:
    return ProjectReader(parse_xml(contents), settings).read()


def load(filename: pathlib.Path, settings: ConversionSettings) -> LoadedUnits:
    with open(filename, "rb") as fp:
        return parse_document(fp.read(), settings)


# Generation


def _tc6(parent: Optional[lxml.etree._Element], tag: str,
         text: Optional[str] = None, **attrib: str) -> lxml.etree._Element:
    """A TC6-namespaced element, as a child of ``parent`` if given."""
    qualified = f"{{{TC6_NAMESPACE}}}{tag}"
    if parent is None:
        element = lxml.etree.Element(qualified, attrib, nsmap={None: TC6_NAMESPACE})
    else:
        element = lxml.etree.SubElement(parent, qualified, attrib)
    if text is not None:
        element.text = text
    return element


def _xhtml(parent: lxml.etree._Element, text: str) -> lxml.etree._Element:
    element = lxml.etree.SubElement(
        parent, f"{{{XHTML_NAMESPACE}}}xhtml", nsmap={None: XHTML_NAMESPACE}
    )
    element.text = text
    return element


def write_type(parent: lxml.etree._Element, type_spec: TypeSpecification):
    """Structured XML for a type specification, below ``parent``."""
    if isinstance(type_spec, StringType):
        attrib = {"length": type_spec.length} if type_spec.length else {}
        _tc6(parent, "wstring" if type_spec.is_wide else "string", **attrib)
    elif isinstance(type_spec, ArrayType):
        array = _tc6(parent, "array")
        for dimension in type_spec.dimensions:
            _tc6(array, "dimension", lower=dimension.lower, upper=dimension.upper)
        write_type(_tc6(array, "baseType"), type_spec.base_type)
    else:
        name = str(type_spec)
        upper = name.upper()
        if upper in ELEMENTARY_TYPES:
            _tc6(parent, upper)
        elif upper.startswith("POINTER TO "):
            pointer = _tc6(parent, "pointer")
            write_type(
                _tc6(pointer, "baseType"),
                parse_type_specification(name[len("POINTER TO "):]),
            )
        else:
            _tc6(parent, "derived", name=name)


def write_variables(parent: lxml.etree._Element, declaration: VariableDeclaration):
    """One ``variable`` element per name declared by ``declaration``."""
    for name in declaration.names:
        attrib = {"name": name}
        if declaration.location:
            attrib["address"] = declaration.location
        variable = _tc6(parent, "variable", **attrib)
        write_type(_tc6(variable, "type"), declaration.type_spec)
        if declaration.initial_value is not None:
            initial_value = _tc6(variable, "initialValue")
            _tc6(initial_value, "simpleValue", value=declaration.initial_value)
        if declaration.comment:
            _xhtml(_tc6(variable, "documentation"), declaration.comment)


def _qualifier_attributes(block: VariableBlock) -> Dict[str, str]:
    return {
        attribute: "true"
        for qualifier, attribute in QUALIFIER_ATTRIBUTES
        if qualifier in block.qualifiers
    }


class ProjectWriter:
    """
    Builds a PLCOpen ``project`` for a list of units.

    Parameters
    ----------
    settings : ConversionSettings
        Output name and base path (prefixed to project structure folders).
    allocator : IdentifierAllocator
        Supplies object ids and the header timestamps.
    """

    def __init__(self, settings: ConversionSettings, allocator: IdentifierAllocator):
        self.settings = settings
        self.allocator = allocator
        self.base_path = settings.get_base_path()
        self.object_ids: Dict[int, str] = {}

    def object_id(self, unit: Unit) -> str:
        key = id(unit)
        if key not in self.object_ids:
            self.object_ids[key] = self.allocator.new_guid()
        return self.object_ids[key]

    def build(self, units: List[Unit]) -> lxml.etree._Element:
        timestamp = self.allocator.iso_timestamp()
        project = _tc6(None, "project")
        _tc6(
            project,
            "fileHeader",
            companyName=self.settings.company,
            productName=PRODUCT_NAME,
            productVersion=PRODUCT_VERSION,
            creationDateTime=timestamp,
        )
        self.write_content_header(project, timestamp)

        types = _tc6(project, "types")
        data_types = _tc6(types, "dataTypes")
        pous = _tc6(types, "pous")
        instances = _tc6(project, "instances")
        _tc6(instances, "configurations")
        add_data = _tc6(project, "addData")

        for unit in units:
            if unit.kind == SourceType.data_type:
                self.write_data_type(data_types, unit)
            elif unit.kind == SourceType.var_global:
                self.write_global_vars(add_data, unit)
            else:
                self.write_pou(pous, unit)

        self.write_project_structure(add_data, units)
        return project

    def write_content_header(self, project: lxml.etree._Element, timestamp: str):
        name = self.settings.get_output_name("plcopen")
        header = _tc6(
            project,
            "contentHeader",
            name=f"{name}.project",
            modificationDateTime=timestamp,
        )
        coordinate_info = _tc6(header, "coordinateInfo")
        for language in ("fbd", "ld", "sfc"):
            _tc6(_tc6(coordinate_info, language), "scaling", x="1", y="1")
        data = _tc6(
            _tc6(header, "addData"),
            "data",
            name=DATA_PROJECT_INFORMATION,
            handleUnknown="implementation",
        )
        _tc6(data, "ProjectInformation")

    def write_add_data(self, parent: lxml.etree._Element, unit: Unit,
                       plain_text: str):
        """The plain text and object id extensions of one object."""
        add_data = _tc6(parent, "addData")
        data = _tc6(add_data, "data", name=DATA_PLAIN_TEXT, handleUnknown="implementation")
        _xhtml(_tc6(data, "InterfaceAsPlainText"), plain_text)
        data = _tc6(add_data, "data", name=DATA_OBJECT_ID, handleUnknown="discard")
        _tc6(data, "ObjectId", self.object_id(unit))

    def write_pou(self, pous: lxml.etree._Element, unit: Unit):
        pou = _tc6(pous, "pou", name=unit.name, pouType=POU_TYPES[unit.kind])
        declaration = strip_end_keyword(unit.declaration, unit.kind)

        interface = _tc6(pou, "interface")
        if unit.kind == SourceType.function:
            header = parse_pou_header(declaration)
            write_type(
                _tc6(interface, "returnType"),
                header.return_type or NamedType(DEFAULT_RETURN_TYPE),
            )

        tags = {keyword: tag for tag, keyword in VARIABLE_LISTS}
        for block in parse_var_blocks(declaration):
            tag = tags.get(block.section)
            if tag is None:
                logger.debug(
                    "%s: %s has no structured equivalent", unit.name, block.section
                )
                continue
            if not block.variables:
                continue
            var_list = _tc6(interface, tag, **_qualifier_attributes(block))
            for variable in block.variables:
                write_variables(var_list, variable)

        body = _tc6(pou, "body")
        _xhtml(_tc6(body, "ST"), unit.implementation)
        self.write_add_data(pou, unit, declaration)

    def write_data_type(self, data_types: lxml.etree._Element, unit: Unit):
        data_type = _tc6(data_types, "dataType", name=unit.name)
        declarations = parse_data_types(unit.declaration)
        matching = [
            declaration for declaration in declarations
            if declaration.name.lower() == unit.name.lower()
        ]
        declaration: Optional[DataTypeDeclaration] = (
            (matching or declarations or [None])[0]
        )

        base_type = _tc6(data_type, "baseType")
        initial_value = None
        if isinstance(declaration, StructureDeclaration):
            struct = _tc6(base_type, "struct")
            for member in declaration.members:
                write_variables(struct, member)
        elif isinstance(declaration, EnumerationDeclaration):
            enum = _tc6(base_type, "enum")
            values = _tc6(enum, "values")
            for value in declaration.values:
                attrib = {"name": value.name}
                if value.value is not None:
                    attrib["value"] = value.value
                _tc6(values, "value", **attrib)
            if declaration.base_type:
                write_type(_tc6(enum, "baseType"), NamedType(declaration.base_type))
            initial_value = declaration.initial_value
        elif isinstance(declaration, AliasDeclaration):
            write_type(base_type, declaration.type_spec)
            initial_value = declaration.initial_value
        else:
            logger.warning(
                "%s: unable to parse data type declaration; only plain text is "
                "exported", unit.name
            )
            _tc6(base_type, "struct")

        if initial_value is not None:
            _tc6(_tc6(data_type, "initialValue"), "simpleValue", value=initial_value)
        self.write_add_data(data_type, unit, unit.declaration)

    def write_global_vars(self, add_data: lxml.etree._Element, unit: Unit):
        data = _tc6(add_data, "data", name=DATA_GLOBAL_VARS, handleUnknown="implementation")
        blocks = [
            block for block in parse_var_blocks(unit.declaration)
            if block.section in ("VAR_GLOBAL", "VAR_CONFIG")
        ]
        attrib = {"name": unit.name}
        if blocks:
            attrib.update(_qualifier_attributes(blocks[0]))
        global_vars = _tc6(data, "globalVars", **attrib)
        for block in blocks:
            for variable in block.variables:
                write_variables(global_vars, variable)
        self.write_add_data(global_vars, unit, unit.declaration)

    def write_project_structure(self, add_data: lxml.etree._Element,
                                units: List[Unit]):
        data = _tc6(add_data, "data", name=DATA_PROJECT_STRUCTURE, handleUnknown="discard")
        structure = _tc6(data, "ProjectStructure")
        parent = structure
        for name in self.base_path:
            parent = _tc6(parent, "Folder", Name=name)
        self.write_folder(parent, FolderTree.from_units(units).root)

    def write_folder(self, parent: lxml.etree._Element, folder: FolderNode):
        for child in folder.sorted_children():
            self.write_folder(_tc6(parent, "Folder", Name=child.name), child)
        for unit in folder.units:
            _tc6(parent, "Object", Name=unit.name, ObjectId=self.object_id(unit))


def render_document(
    units: List[Unit],
    settings: ConversionSettings,
    allocator: IdentifierAllocator,
) -> bytes:
    project = ProjectWriter(settings, allocator).build(units)
    return tree_to_xml_source(project)


def save(
    units: List[Unit],
    settings: ConversionSettings,
    allocator: Optional[IdentifierAllocator] = None,
) -> List[OutputFile]:
    if allocator is None:
        allocator = IdentifierAllocator()
    name = settings.get_output_name("plcopen")
    return [
        OutputFile(
            path=(f"{name}{XML_SUFFIX}", ),
            contents=render_document(units, settings, allocator),
            units=list(units),
        )
    ]


def _register():
    """Register the PLCOpen XML handlers."""
    register_input_handler("plcopen", load)
    register_input_handler(XML_SUFFIX, load)

    register_output_handler("plcopen", save)
