import pytest

from ..stub import STUB_HEADER, default_value_for_type, synthesize_stub


def stub_of(*assignments: str) -> str:
    return "\n".join((*STUB_HEADER, *assignments))


def test_function_block_output():
    declaration = "FUNCTION_BLOCK FB_Test\nVAR_OUTPUT\n  y : BOOL;\nEND_VAR"
    assert synthesize_stub(declaration) == stub_of("y := FALSE;")


@pytest.mark.parametrize(
    "declaration, expected",
    [
        pytest.param(
            "FUNCTION_BLOCK FB\nVAR_OUTPUT\n    count : INT := 5;\nEND_VAR",
            stub_of("count := 5;"),
            id="initializer",
        ),
        pytest.param(
            "FUNCTION_BLOCK FB\nVAR_OUTPUT\n    s : STRING(80);\n    w : WSTRING;\nEND_VAR",
            stub_of("s := '';", "w := \"\";"),
            id="strings",
        ),
        pytest.param(
            "FUNCTION_BLOCK FB\nVAR_OUTPUT\n    a, b : REAL;\nEND_VAR",
            stub_of("a := 0;", "b := 0;"),
            id="name_list",
        ),
        pytest.param(
            "FUNCTION_BLOCK FB\nVAR_INPUT\n    i : BOOL;\nEND_VAR\nVAR\n    l : INT;\nEND_VAR",
            stub_of(),
            id="no_outputs",
        ),
        pytest.param(
            "PROGRAM P\nVAR_IN_OUT\n    io : BOOL; // in and out\nEND_VAR\n"
            "VAR_OUTPUT\n    (* status : INT; *)\n    done : BOOL;\nEND_VAR",
            stub_of("io := FALSE;", "done := FALSE;"),
            id="in_out_and_comments",
        ),
        pytest.param(
            "FUNCTION_BLOCK FB\nVAR_OUTPUT\n    q AT %QX0.0 : BOOL;\nEND_VAR",
            stub_of("q := FALSE;"),
            id="located",
        ),
    ],
)
def test_synthesize_stub(declaration: str, expected: str):
    assert synthesize_stub(declaration) == expected


def test_stub_is_deterministic():
    declaration = "FUNCTION_BLOCK FB\nVAR_OUTPUT\n    x : INT;\n    y : BOOL;\nEND_VAR"
    assert synthesize_stub(declaration) == synthesize_stub(declaration)


@pytest.mark.parametrize(
    "type_name, expected",
    [
        pytest.param("BOOL", "FALSE", id="bool"),
        pytest.param("bool", "FALSE", id="bool_lower"),
        pytest.param("STRING", "''", id="string"),
        pytest.param("STRING(80)", "''", id="string_length"),
        pytest.param("WSTRING", '""', id="wstring"),
        pytest.param("LREAL", "0", id="lreal"),
        pytest.param("ST_Point", "0", id="derived"),
    ],
)
def test_default_value_for_type(type_name: str, expected: str):
    assert default_value_for_type(type_name) == expected
