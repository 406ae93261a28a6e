from __future__ import annotations

import pathlib
import shlex
import sys
from typing import List

import pytest
from pytest import param

from .. import MODULE_PATH
from ..inspect import main as inspect_main
from ..inspect import summarize
from ..input import load_file_by_name
from ..main import COMMANDS
from ..main import main as iecbridge_main
from .conftest import APISCHEMA_SKIP, SOURCE_TREE

README_PATH = MODULE_PATH.parent / "README.md"


def get_readme_lines() -> list[str]:
    if not README_PATH.exists():
        return []

    with open(README_PATH) as fp:
        lines = fp.read().splitlines()

    return [
        line.lstrip("$ ")
        for line in lines if line.lstrip().startswith("$ iecbridge")
    ]


@pytest.fixture(params=get_readme_lines())
def readme_line(request):
    return request.param


@pytest.mark.parametrize(
    "args",
    [
        param(
            ["--help"],
            id="top-help",
        ),
        param(
            ["convert", "--help"],
            id="convert-help",
        ),
        param(
            ["inspect", "--help"],
            id="inspect-help",
        ),
        param(
            ["--version"],
            id="version",
        ),
    ]
)
def test_iecbridge_main_help(monkeypatch, args: List[str]):
    monkeypatch.setattr(sys, "argv", ["iecbridge", *args])
    try:
        iecbridge_main()
    except SystemExit as ex:
        assert ex.code == 0


@pytest.mark.parametrize(
    "args",
    [
        param(
            ["convert", "SOURCE", "--to", "exp", "-o", "OUTPUT"],
            id="convert-exp",
        ),
        param(
            ["convert", "SOURCE", "-t", "codesys", "-o", "OUTPUT", "--base", "Device,App"],
            id="convert-codesys",
        ),
        param(
            ["--log", "debug", "convert", "SOURCE", "-t", "plcopen", "-o", "OUTPUT", "--name", "proj"],
            id="convert-plcopen-debug",
        ),
        param(
            ["convert", "SOURCE", "-t", "plcopen", "-o", "OUTPUT", "--company", "ACME"],
            id="convert-plcopen-company",
        ),
        param(
            ["convert", "SOURCE", "-o", "OUTPUT", "--flat", "--no-overwrite"],
            id="convert-st-flat",
        ),
        param(
            ["inspect", "SOURCE"],
            id="inspect",
        ),
        param(
            ["inspect", "--declarations", "SOURCE"],
            id="inspect-declarations",
        ),
    ]
)
def test_iecbridge_main(
    monkeypatch, tmp_path: pathlib.Path, source_tree: pathlib.Path, args: List[str]
):
    def replace(arg: str) -> str:
        if arg == "SOURCE":
            return str(source_tree)
        if arg == "OUTPUT":
            return str(tmp_path / "out")
        return arg

    monkeypatch.setattr(sys, "argv", ["iecbridge", *(replace(arg) for arg in args)])
    try:
        iecbridge_main()
    except SystemExit as ex:
        assert ex.code == 0


def test_iecbridge_main_without_command(capsys):
    iecbridge_main([])
    out = capsys.readouterr().out
    assert "$ iecbridge convert --help" in out
    assert "$ iecbridge inspect --help" in out


@pytest.mark.parametrize(
    "command, summary",
    [
        param("convert", "`iecbridge convert` converts between", id="convert"),
        param("inspect", "`iecbridge inspect` lists the program units", id="inspect"),
    ],
)
def test_subcommand_summary(command: str, summary: str):
    _, _, help_text = COMMANDS[command]
    assert help_text.startswith(summary)
    assert "\n" not in help_text


def test_readme_examples(monkeypatch, readme_line: str):
    monkeypatch.setattr(sys, "argv", shlex.split(readme_line))
    try:
        iecbridge_main()
    except SystemExit as ex:
        assert ex.code == 0


def test_summarize(source_tree: pathlib.Path):
    summary = summarize(load_file_by_name(source_tree), declarations=True)
    lines = summary.splitlines()
    assert "function_block (ST)" in summary
    assert "    TYPE ST_Point :" in lines
    assert lines[-1] == f"{len(SOURCE_TREE)} units, 0 skipped"


def test_inspect_main(source_tree: pathlib.Path, capsys):
    loaded = inspect_main(str(source_tree))
    assert len(loaded.units) == len(SOURCE_TREE)
    assert "POUs/Functions/F_Add" in capsys.readouterr().out


def test_inspect_missing_source(tmp_path: pathlib.Path):
    with pytest.raises(SystemExit) as ex:
        inspect_main(str(tmp_path / "missing.xml"))
    assert ex.value.code == 1


@pytest.mark.skipif(APISCHEMA_SKIP, reason="apischema unavailable")
def test_inspect_json(source_tree: pathlib.Path, capsys):
    import json

    inspect_main(str(source_tree), use_json=True)
    serialized = json.loads(capsys.readouterr().out)
    by_name = {item["name"]: item for item in serialized}
    assert by_name["F_Add"]["kind"] == "FUNCTION"
    assert by_name["F_Add"]["tree_path"] == ["POUs", "Functions"]
