"""
`iecbridge` converts IEC 61131-3 Structured Text source trees to and from
PLC engineering tool exports.

Formats: st (directory of .st files), exp (CoDeSys 2.3), codesys (CoDeSys
3.5 .export), plcopen (PLCOpen TC6 XML).

Subcommands::
"""

import argparse
import importlib
import logging
from typing import Callable, Dict, Optional, Sequence, Tuple

import iecbridge

DESCRIPTION = __doc__

LOG_FORMAT = "%(levelname)s: %(message)s"

MODULES = ("convert", "inspect")

Command = Tuple[Callable, Callable, str]


def _summary_line(module) -> str:
    """The first sentence of a subcommand module docstring, for --help."""
    doc = " ".join((module.__doc__ or "").split())
    return doc.split(". ")[0].rstrip(".")


def _build_commands() -> Dict[str, Command]:
    global DESCRIPTION
    result = {}
    for name in MODULES:
        mod = importlib.import_module(f".{name}", "iecbridge")
        result[name] = (mod.build_arg_parser, mod.main, _summary_line(mod))
        DESCRIPTION += f"\n    $ iecbridge {name} --help"
    return result


COMMANDS = _build_commands()


def configure_logging(level: str) -> logging.Logger:
    """Set the package log level; handlers come from ``logging.basicConfig``."""
    logger = logging.getLogger("iecbridge")
    logger.setLevel(level.upper())
    logging.basicConfig(format=LOG_FORMAT)
    return logger


def build_arg_parser() -> argparse.ArgumentParser:
    top_parser = argparse.ArgumentParser(
        prog="iecbridge",
        description=DESCRIPTION,
        formatter_class=argparse.RawTextHelpFormatter,
    )

    top_parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=iecbridge.__version__,
        help="Show the iecbridge version number and exit.",
    )

    top_parser.add_argument(
        "--log",
        "-l",
        dest="log_level",
        default="INFO",
        type=str,
        help="Python logging level (e.g. DEBUG, INFO, WARNING)",
    )

    subparsers = top_parser.add_subparsers(title="subcommands")
    for command_name, (build_func, main, summary) in COMMANDS.items():
        sub = subparsers.add_parser(command_name, help=summary)
        build_func(sub)
        sub.set_defaults(func=main)
    return top_parser


def main(argv: Optional[Sequence[str]] = None):
    # Console entry point in setup.py
    top_parser = build_arg_parser()
    args = top_parser.parse_args(argv)
    kwargs = vars(args)
    logger = configure_logging(kwargs.pop("log_level"))

    func = kwargs.pop("func", None)
    if func is None:
        top_parser.print_help()
        return

    logger.debug("iecbridge %s(**%r)", func.__module__, kwargs)
    func(**kwargs)
