import pathlib

import pytest

from .. import plcopen
from ..config import ConversionSettings
from ..unit import (ImplementationKind, MalformedContainerError, SourceType,
                    UnrecognizedUnitError, Unit)
from ..xmltree import parse_xml
from .conftest import assert_units_equivalent

GLOBALS_DECLARATION = "VAR_GLOBAL\n    counter : INT := 0;\nEND_VAR"

RECONSTRUCTION_PROJECT = """\
<?xml version="1.0" encoding="utf-8"?>
<project xmlns="http://www.plcopen.org/xml/tc6_0200">
  <fileHeader companyName="test" productName="test" productVersion="1" creationDateTime="2024-01-01T00:00:00"/>
  <types>
    <dataTypes>
      <dataType name="E_Mode">
        <baseType>
          <enum>
            <values>
              <value name="Idle" value="0"/>
              <value name="Run"/>
            </values>
          </enum>
        </baseType>
      </dataType>
      <dataType name="ST_Point">
        <baseType>
          <struct>
            <variable name="x"><type><REAL/></type></variable>
            <variable name="y">
              <type><REAL/></type>
              <initialValue><simpleValue value="1.5"/></initialValue>
            </variable>
          </struct>
        </baseType>
      </dataType>
      <dataType name="T_Name">
        <baseType><string length="40"/></baseType>
      </dataType>
    </dataTypes>
    <pous>
      <pou name="F_Add" pouType="function">
        <interface>
          <returnType><INT/></returnType>
          <inputVars>
            <variable name="a"><type><INT/></type></variable>
            <variable name="b">
              <type><INT/></type>
              <documentation><xhtml xmlns="http://www.w3.org/1999/xhtml">second operand</xhtml></documentation>
            </variable>
          </inputVars>
        </interface>
        <body><ST><xhtml xmlns="http://www.w3.org/1999/xhtml">F_Add := a + b;</xhtml></ST></body>
      </pou>
      <pou name="F_Default" pouType="function">
        <body><ST><xhtml xmlns="http://www.w3.org/1999/xhtml">F_Default := TRUE;</xhtml></ST></body>
      </pou>
      <pou name="FB_Ladder" pouType="functionBlock">
        <interface>
          <outputVars>
            <variable name="done"><type><BOOL/></type></variable>
          </outputVars>
          <localVars constant="true">
            <variable name="buf">
              <type>
                <array>
                  <dimension lower="0" upper="9"/>
                  <baseType><string length="20"/></baseType>
                </array>
              </type>
            </variable>
            <variable name="ptr" address="%MW10">
              <type><pointer><baseType><derived name="ST_Point"/></baseType></pointer></type>
            </variable>
          </localVars>
        </interface>
        <body><LD/></body>
      </pou>
      <pou name="Unsupported" pouType="interface"/>
    </pous>
  </types>
  <instances>
    <configurations>
      <configuration name="Config">
        <resource name="Res">
          <globalVars>
            <variable name="origin">
              <type><derived name="ST_Point"/></type>
              <initialValue>
                <structValue>
                  <value member="x"><simpleValue value="0.0"/></value>
                  <value member="y"><simpleValue value="0.0"/></value>
                </structValue>
              </initialValue>
            </variable>
            <variable name="table">
              <type>
                <array>
                  <dimension lower="1" upper="3"/>
                  <baseType><INT/></baseType>
                </array>
              </type>
              <initialValue>
                <arrayValue>
                  <value repetitionValue="2"><simpleValue value="0"/></value>
                  <value><simpleValue value="7"/></value>
                </arrayValue>
              </initialValue>
            </variable>
          </globalVars>
        </resource>
      </configuration>
    </configurations>
  </instances>
</project>
"""


def render(units, allocator, **settings) -> bytes:
    return plcopen.render_document(units, ConversionSettings(**settings), allocator)


def test_global_variable_list(allocator):
    unit = Unit(name="Globals", kind=SourceType.var_global, declaration=GLOBALS_DECLARATION)
    document = render([unit], allocator)
    root = parse_xml(document)

    (data, ) = [
        data for data in root.find_all("addData/data")
        if data.attr("name") == plcopen.DATA_GLOBAL_VARS
    ]
    global_vars = data.child("globalVars")
    assert global_vars.attr("name") == "Globals"
    (variable, ) = global_vars.children_named("variable")
    assert variable.attr("name") == "counter"
    assert variable.find("type/INT") is not None
    assert variable.find("initialValue/simpleValue").attr("value") == "0"
    assert plcopen.get_plain_text(global_vars) == GLOBALS_DECLARATION

    (loaded, ) = plcopen.parse_document(document, ConversionSettings()).units
    assert loaded.name == "Globals"
    assert loaded.kind == SourceType.var_global
    assert loaded.declaration == GLOBALS_DECLARATION


def test_round_trip(sample_units, allocator):
    document = render(sample_units, allocator)
    loaded = plcopen.parse_document(document, ConversionSettings())
    assert not loaded.skipped
    assert_units_equivalent(sample_units, loaded.units)


def test_base_path_round_trip(sample_units, allocator):
    document = render(sample_units, allocator, base_path=("Application", ))
    loaded = plcopen.parse_document(document, ConversionSettings(base_path=("Application", )))
    assert_units_equivalent(sample_units, loaded.units)

    loaded = plcopen.parse_document(document, ConversionSettings())
    assert {unit.tree_path[:1] for unit in loaded.units} == {("Application", )}


@pytest.mark.parametrize(
    "settings, company",
    [
        pytest.param({}, "iecbridge", id="default"),
        pytest.param({"company": "ACME Automation"}, "ACME Automation", id="option"),
    ],
)
def test_file_header_company(sample_units, allocator, settings, company):
    root = parse_xml(render(sample_units, allocator, **settings))
    header = root.find("fileHeader")
    assert header.attr("companyName") == company
    assert header.attr("creationDateTime") == "2024-01-02T03:04:05"


def test_crlf(sample_units, allocator):
    document = render(sample_units, allocator)
    assert document.startswith(b'<?xml version="1.0" encoding="utf-8"?>\r\n<project')
    assert b"\n" not in document.replace(b"\r\n", b"")
    assert b"\r\r\n" not in document


def test_structured_pou(allocator):
    unit = Unit(
        name="F_Scale",
        kind=SourceType.function,
        declaration=(
            "FUNCTION F_Scale : LREAL\n"
            "VAR_INPUT\n"
            "    raw AT %IW2 : INT; // sensor input\n"
            "    name : STRING(10) := 'x';\n"
            "END_VAR\n"
            "VAR CONSTANT\n"
            "    factor : LREAL := 0.5;\n"
            "END_VAR\n"
            "END_FUNCTION"
        ),
        implementation="F_Scale := raw * factor;",
    )
    root = parse_xml(render([unit], allocator))
    (pou, ) = root.find_all("types/pous/pou")
    assert pou.attr("pouType") == "function"
    assert pou.find("interface/returnType/LREAL") is not None

    (raw, name) = pou.find_all("interface/inputVars/variable")
    assert raw.attr("address") == "%IW2"
    assert raw.find("documentation/xhtml").text == "sensor input"
    assert name.find("type/string").attr("length") == "10"
    assert name.find("initialValue/simpleValue").attr("value") == "'x'"

    local_vars = pou.find("interface/localVars")
    assert local_vars.attr("constant") == "true"
    assert pou.find("body/ST/xhtml").text == "F_Scale := raw * factor;"
    assert plcopen.get_plain_text(pou) == (
        "FUNCTION F_Scale : LREAL\n"
        "VAR_INPUT\n"
        "    raw AT %IW2 : INT; // sensor input\n"
        "    name : STRING(10) := 'x';\n"
        "END_VAR\n"
        "VAR CONSTANT\n"
        "    factor : LREAL := 0.5;\n"
        "END_VAR"
    )


def test_structured_data_types(allocator):
    units = [
        Unit(
            name="E_Mode",
            kind=SourceType.data_type,
            declaration="TYPE E_Mode :\n(\n    Idle := 0,\n    Run\n) INT;\nEND_TYPE",
        ),
        Unit(
            name="ST_Point",
            kind=SourceType.data_type,
            declaration="TYPE ST_Point :\nSTRUCT\n    x : REAL;\n    y : REAL := 1.5;\nEND_STRUCT\nEND_TYPE",
        ),
        Unit(
            name="T_Buffer",
            kind=SourceType.data_type,
            declaration="TYPE T_Buffer : ARRAY[0..7] OF BYTE;\nEND_TYPE",
        ),
    ]
    root = parse_xml(render(units, allocator))
    enum, struct, alias = root.find_all("types/dataTypes/dataType")

    values = enum.find_all("baseType/enum/values/value")
    assert [(value.attr("name"), value.attr("value")) for value in values] == [
        ("Idle", "0"),
        ("Run", ""),
    ]
    assert enum.find("baseType/enum/baseType/INT") is not None

    members = struct.find_all("baseType/struct/variable")
    assert [member.attr("name") for member in members] == ["x", "y"]
    assert members[1].find("initialValue/simpleValue").attr("value") == "1.5"

    array = alias.find("baseType/array")
    assert array.child("dimension").attrib == {"lower": "0", "upper": "7"}
    assert array.find("baseType/BYTE") is not None


def test_unparsed_data_type_keeps_plain_text(allocator):
    declaration = "TYPE T_Odd :\n    INT (0..100)\nEND_TYPE"
    unit = Unit(name="T_Odd", kind=SourceType.data_type, declaration=declaration)
    (loaded, ) = plcopen.parse_document(render([unit], allocator), ConversionSettings()).units
    assert loaded.declaration == declaration


def test_reconstruction():
    loaded = plcopen.parse_document(RECONSTRUCTION_PROJECT.encode("utf-8"), ConversionSettings())
    by_name = {unit.name: unit for unit in loaded.units}

    ((identifier, error), ) = loaded.skipped
    assert identifier == "Unsupported"
    assert isinstance(error, UnrecognizedUnitError)

    assert by_name["F_Add"].declaration == (
        "FUNCTION F_Add : INT\n"
        "VAR_INPUT\n"
        "    a : INT;\n"
        "    b : INT; // second operand\n"
        "END_VAR"
    )
    assert by_name["F_Add"].implementation == "F_Add := a + b;"
    assert by_name["F_Default"].declaration == "FUNCTION F_Default : BOOL"

    ladder = by_name["FB_Ladder"]
    assert ladder.declaration == (
        "FUNCTION_BLOCK FB_Ladder\n"
        "VAR_OUTPUT\n"
        "    done : BOOL;\n"
        "END_VAR\n"
        "VAR CONSTANT\n"
        "    buf : ARRAY[0..9] OF STRING(20);\n"
        "    ptr AT %MW10 : POINTER TO ST_Point;\n"
        "END_VAR"
    )
    assert ladder.implementation == ""
    assert ladder.implementation_kind == ImplementationKind.ladder
    assert ladder.needs_stub

    assert by_name["E_Mode"].declaration == (
        "TYPE E_Mode :\n(\n    Idle := 0,\n    Run\n);\nEND_TYPE"
    )
    assert by_name["ST_Point"].declaration == (
        "TYPE ST_Point :\nSTRUCT\n    x : REAL;\n    y : REAL := 1.5;\nEND_STRUCT\nEND_TYPE"
    )
    assert by_name["T_Name"].declaration == "TYPE T_Name : STRING(40);\nEND_TYPE"

    globals_ = by_name[plcopen.DEFAULT_GLOBAL_VARS_NAME]
    assert globals_.kind == SourceType.var_global
    assert globals_.declaration == (
        "VAR_GLOBAL\n"
        "    origin : ST_Point := (x := 0.0, y := 0.0);\n"
        "    table : ARRAY[1..3] OF INT := [2(0), 7];\n"
        "END_VAR"
    )


def test_reconstructed_units_classify():
    loaded = plcopen.parse_document(RECONSTRUCTION_PROJECT.encode("utf-8"), ConversionSettings())
    for unit in loaded.units:
        if unit.kind.is_executable:
            assert unit.declaration.split()[1] == unit.name


def test_project_structure(sample_units, allocator):
    root = parse_xml(render(sample_units, allocator))
    (data, ) = [
        data for data in root.find_all("addData/data")
        if data.attr("name") == plcopen.DATA_PROJECT_STRUCTURE
    ]
    structure = plcopen.ProjectStructure.from_project(root)
    assert structure.by_name == {
        "FB_Counter": ("POUs", ),
        "F_Add": ("POUs", "Functions"),
        "Main": (),
        "ST_Point": ("Types", ),
        "Globals": (),
    }
    assert len(structure.by_object_id) == len(sample_units)
    folders = [node.attr("Name") for node in data.walk() if node.tag == "Folder"]
    assert folders == ["POUs", "Functions", "Types"]


@pytest.mark.parametrize(
    "body, expected",
    [
        pytest.param("<FBD/>", ImplementationKind.fbd, id="fbd"),
        pytest.param("<SFC/>", ImplementationKind.sfc, id="sfc"),
        pytest.param("<IL/>", ImplementationKind.il, id="il"),
        pytest.param("<ST><xhtml/></ST>", ImplementationKind.unknown, id="empty_st"),
        pytest.param("", ImplementationKind.unknown, id="no_language"),
    ],
)
def test_body_language(body: str, expected: ImplementationKind):
    document = (
        '<project xmlns="http://www.plcopen.org/xml/tc6_0200"><types><pous>'
        '<pou name="P" pouType="program">'
        f"<body>{body}</body>"
        "</pou></pous></types></project>"
    )
    (unit, ) = plcopen.parse_document(document.encode("utf-8"), ConversionSettings()).units
    assert unit.implementation_kind == expected
    assert unit.implementation == ""
    assert unit.declaration == "PROGRAM P"


def test_extension_pous_are_deduplicated():
    document = (
        '<project xmlns="http://www.plcopen.org/xml/tc6_0200">'
        "<types><pous>"
        '<pou name="Main" pouType="program"><body><ST><xhtml>x := 1;</xhtml></ST></body></pou>'
        "</pous></types>"
        "<addData><data name=\"http://www.3s-software.com/plcopenxml/pou\">"
        '<pou name="Main" pouType="program"><body><ST><xhtml>x := 2;</xhtml></ST></body></pou>'
        '<pou name="Extra" pouType="program"><body><ST><xhtml>y := 1;</xhtml></ST></body></pou>'
        "</data></addData>"
        "</project>"
    )
    loaded = plcopen.parse_document(document.encode("utf-8"), ConversionSettings())
    assert [(unit.name, unit.implementation) for unit in loaded.units] == [
        ("Main", "x := 1;"),
        ("Extra", "y := 1;"),
    ]


@pytest.mark.parametrize(
    "document",
    [
        pytest.param(b"<project", id="not_xml"),
        pytest.param(b"<ExportFile/>", id="wrong_root"),
        pytest.param(
            b'<project xmlns="http://www.plcopen.org/xml/tc6_0200"><types/></project>',
            id="no_objects",
        ),
    ],
)
def test_malformed(document: bytes):
    with pytest.raises(MalformedContainerError):
        plcopen.parse_document(document, ConversionSettings())


def test_save_and_load(tmp_path: pathlib.Path, sample_units, allocator):
    settings = ConversionSettings(output=tmp_path)
    (output_file, ) = plcopen.save(sample_units, settings, allocator)
    assert output_file.path == ("plcopen_export.xml", )
    filename = output_file.write_to(tmp_path)

    loaded = plcopen.load(filename, ConversionSettings(source=filename))
    assert_units_equivalent(sample_units, loaded.units)
