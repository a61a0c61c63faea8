"""
Parses and executes Catlang programs, packaging the outcome as an ExecutionResult.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

from catlang.cat_datatypes import Instruction, CatError, ParseError, ExecutionError
from catlang.cat_interpreter import Interpreter
from catlang.cat_parser import Parser
from catlang.cat_trace import ExecFrame


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    stack: List[Any] = field(default_factory=list)
    side_stack: List[Any] = field(default_factory=list)
    instructions: List[Instruction] = field(default_factory=list)
    trace: List[ExecFrame] = field(default_factory=list)
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_kind and not msg.startswith(f"{self.error_kind}:"):
            return f"{self.error_kind}: {msg}"
        return msg


class ScriptRunner:
    """Parses and executes Catlang source, one fresh interpreter per script."""

    def __init__(self, trace: bool = False, significant_whitespace: bool = False,
                 read_line: Optional[Callable[[], str]] = None,
                 write: Optional[Callable[[str], Any]] = None):
        self.trace = trace
        self.parser = Parser(significant_whitespace=significant_whitespace)
        self.read_line = read_line
        self.write = write
        self.interpreter: Optional[Interpreter] = None
        # Called with the frames of each top-level instruction as it completes.
        self.on_frames: Optional[Callable[[List[ExecFrame]], None]] = None

    def parse(self, source: str) -> List[Instruction]:
        return self.parser.parse(source)

    def handle_script(self, source: str) -> ExecutionResult:
        """The main entry point to execute a script. Language errors never raise."""
        interpreter = Interpreter(trace=self.trace, read_line=self.read_line, write=self.write)
        self.interpreter = interpreter

        # 1. Parse
        try:
            instructions = self.parse(source)
        except ParseError as e:
            return self._error(e, interpreter, [], [])

        # 2. Execute
        trace: List[ExecFrame] = []
        try:
            for command in instructions:
                interpreter.execute_single(command)
                self._collect_frames(interpreter, trace)
        except ExecutionError as e:
            self._collect_frames(interpreter, trace)
            return self._error(e, interpreter, instructions, trace)

        stack = interpreter.main_stack
        return ExecutionResult(
            status='success',
            value=stack[-1] if stack else None,
            stack=stack,
            side_stack=interpreter.side_stack,
            instructions=instructions,
            trace=trace,
            side_effects=interpreter.side_effects,
        )

    def _collect_frames(self, interpreter: Interpreter, trace: List[ExecFrame]):
        frames = interpreter.drain_frames()
        if frames:
            trace.extend(frames)
            if self.on_frames is not None:
                self.on_frames(frames)

    def _error(self, e: CatError, interpreter: Interpreter,
               instructions: List[Instruction], trace: List[ExecFrame]) -> ExecutionResult:
        msg = f"{e.kind}: {e.message}"
        interpreter.side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(
            status='error',
            stack=interpreter.main_stack,
            side_stack=interpreter.side_stack,
            instructions=instructions,
            trace=trace,
            error_message=msg,
            error_kind=e.kind,
            side_effects=interpreter.side_effects,
        )


def run(source: str, **kwargs) -> ExecutionResult:
    """Convenience wrapper: run `source` with a fresh ScriptRunner."""
    return ScriptRunner(**kwargs).handle_script(source)
