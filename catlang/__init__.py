"""
Catlang: a small concatenative golf language.
"""
from catlang.cat_datatypes import (
    Instruction, Op,
    CatError, ParseError, ExecutionError,
)
from catlang.cat_parser import Parser, parse
from catlang.cat_interpreter import Interpreter
from catlang.cat_trace import ExecFrame, format_trace
from catlang.cat_printer import Printer, display, debug_display
from catlang.cat_runtime import ScriptRunner, ExecutionResult, run

__all__ = [
    "Instruction", "Op",
    "CatError", "ParseError", "ExecutionError",
    "Parser", "parse",
    "Interpreter",
    "ExecFrame", "format_trace",
    "Printer", "display", "debug_display",
    "ScriptRunner", "ExecutionResult", "run",
]
