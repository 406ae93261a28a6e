import datetime
import pathlib
from typing import Dict, List

import pytest

from ..unit import ImplementationKind, SourceType, Unit
from ..util import IdentifierAllocator

TEST_PATH = pathlib.Path(__file__).parent

try:
    import apischema
except ImportError:
    # apischema is optional for serialization testing
    apischema = None

APISCHEMA_SKIP = apischema is None


FB_SOURCE = """\
FUNCTION_BLOCK FB_Counter
VAR_INPUT
    enable : BOOL; // count while TRUE
END_VAR
VAR_OUTPUT
    count : INT;
END_VAR
IF enable THEN
    count := count + 1;
END_IF
END_FUNCTION_BLOCK
"""

FUNCTION_SOURCE = """\
FUNCTION F_Add : INT
VAR_INPUT
    a : INT;
    b : INT;
END_VAR
F_Add := a + b;
END_FUNCTION
"""

PROGRAM_SOURCE = """\
PROGRAM Main
VAR
    counter : FB_Counter;
    point : ST_Point;
END_VAR
counter(enable := TRUE);
END_PROGRAM
"""

STRUCT_SOURCE = """\
TYPE ST_Point :
STRUCT
    x : REAL;
    y : REAL := 1.5;
END_STRUCT
END_TYPE
"""

ENUM_SOURCE = """\
TYPE E_Mode :
(
    Idle := 0,
    Running,
    Faulted
);
END_TYPE
"""

GVL_SOURCE = """\
// Global variable list container: VAR_GLOBAL blocks are extracted on import
CONFIGURATION Globals
    VAR_GLOBAL
        counter : INT := 0;
        name : STRING(20) := 'plc';
    END_VAR
END_CONFIGURATION
"""

#: Relative path -> contents of a small source tree.
SOURCE_TREE: Dict[str, str] = {
    "POUs/FB_Counter.st": FB_SOURCE,
    "POUs/Functions/F_Add.st": FUNCTION_SOURCE,
    "Main.st": PROGRAM_SOURCE,
    "Types/ST_Point.st": STRUCT_SOURCE,
    "Types/E_Mode.st": ENUM_SOURCE,
    "Globals.st": GVL_SOURCE,
}


def write_tree(root: pathlib.Path, files: Dict[str, str]) -> pathlib.Path:
    for relative, contents in files.items():
        filename = root.joinpath(*relative.split("/"))
        filename.parent.mkdir(parents=True, exist_ok=True)
        filename.write_text(contents, encoding="utf-8")
    return root


def read_tree(root: pathlib.Path) -> Dict[str, str]:
    return {
        "/".join(path.relative_to(root).parts): path.read_text(encoding="utf-8")
        for path in sorted(root.rglob("*.st"))
    }


@pytest.fixture
def allocator() -> IdentifierAllocator:
    return IdentifierAllocator(
        seed=0,
        timestamp=datetime.datetime(2024, 1, 2, 3, 4, 5),
    )


@pytest.fixture
def source_tree(tmp_path: pathlib.Path) -> pathlib.Path:
    return write_tree(tmp_path / "src", SOURCE_TREE)


@pytest.fixture
def sample_units() -> List[Unit]:
    return [
        Unit(
            name="FB_Counter",
            kind=SourceType.function_block,
            declaration=(
                "FUNCTION_BLOCK FB_Counter\n"
                "VAR_INPUT\n"
                "    enable : BOOL; // count while TRUE\n"
                "END_VAR\n"
                "VAR_OUTPUT\n"
                "    count : INT;\n"
                "END_VAR"
            ),
            implementation="IF enable THEN\n    count := count + 1;\nEND_IF",
            tree_path=("POUs", ),
        ),
        Unit(
            name="F_Add",
            kind=SourceType.function,
            declaration="FUNCTION F_Add : INT\nVAR_INPUT\n    a : INT;\n    b : INT;\nEND_VAR",
            implementation="F_Add := a + b;",
            tree_path=("POUs", "Functions"),
        ),
        Unit(
            name="Main",
            kind=SourceType.program,
            declaration="PROGRAM Main\nVAR\n    counter : FB_Counter;\nEND_VAR",
            implementation="counter(enable := TRUE);",
        ),
        Unit(
            name="ST_Point",
            kind=SourceType.data_type,
            declaration=STRUCT_SOURCE.rstrip(),
            tree_path=("Types", ),
        ),
        Unit(
            name="Globals",
            kind=SourceType.var_global,
            declaration=(
                "VAR_GLOBAL\n"
                "    counter : INT := 0;\n"
                "    name : STRING(20) := 'plc';\n"
                "END_VAR"
            ),
        ),
    ]


@pytest.fixture
def ladder_unit() -> Unit:
    return Unit(
        name="FB_Test",
        kind=SourceType.function_block,
        declaration="FUNCTION_BLOCK FB_Test\nVAR_OUTPUT\n  y : BOOL;\nEND_VAR",
        implementation_kind=ImplementationKind.ladder,
    )


def assert_units_equivalent(expected: List[Unit], actual: List[Unit]):
    """Compare the fields that survive a round trip through any format."""
    def key(unit: Unit):
        return (
            unit.name,
            unit.kind,
            unit.declaration.strip(),
            unit.implementation.strip(),
            unit.tree_path,
        )

    assert sorted(map(key, actual)) == sorted(map(key, expected))
