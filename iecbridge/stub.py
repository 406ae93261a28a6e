"""Placeholder bodies for POUs whose implementation is not Structured Text."""
from __future__ import annotations

from typing import List

from .declarations import parse_var_blocks

STUB_HEADER = (
    "// ** GENERATED STUB: original implementation is non-ST (FBD/LD/SFC/IL) **",
    "// Adapt this body for your application logic.",
)

#: Only these blocks are assigned; inputs, locals and temporaries are left alone.
ASSIGNED_SECTIONS = ("VAR_OUTPUT", "VAR_IN_OUT")


def default_value_for_type(type_name: str) -> str:
    """
    The default assigned to a variable of ``type_name`` without an initializer.

    Parameters
    ----------
    type_name : str
        The declared type, e.g. ``BOOL`` or ``STRING(80)``.

    Returns
    -------
    str
        ``FALSE`` for booleans, an empty string literal for strings and ``0``
        for anything else.
    """
    type_name = type_name.strip().upper()
    if type_name.endswith("BOOL"):
        return "FALSE"
    if type_name.startswith("WSTRING"):
        return '""'
    if type_name.startswith("STRING"):
        return "''"
    return "0"


def synthesize_stub(declaration: str) -> str:
    """
    Build a minimal Structured Text body for the POU declared by ``declaration``.

    Every variable of a ``VAR_OUTPUT`` or ``VAR_IN_OUT`` block is assigned its
    declared initial value, or a default based on its type.  The result
    depends only on ``declaration``.

    Parameters
    ----------
    declaration : str
        The POU declaration.

    Returns
    -------
    str
        The stub body, starting with a fixed two-line comment header.
    """
    lines: List[str] = list(STUB_HEADER)
    for block in parse_var_blocks(declaration):
        if block.section not in ASSIGNED_SECTIONS:
            continue
        for variable in block.variables:
            if variable.initial_value is not None:
                value = variable.initial_value
            else:
                value = default_value_for_type(str(variable.type_spec))
            lines.extend(f"{name} := {value};" for name in variable.names)

    return "\n".join(lines)
