"""
The core Catlang interpreter: a stack machine that executes one instruction
at a time against a main stack, a side stack and a variable store.
"""
import os
import re
import sys
from typing import Any, Callable, Iterable, List, Optional

from catlang.cat_datatypes import (
    Instruction, Op,
    ExecutionError, EmptyStack, EmptySideStack, UnbalancedBlock, TypeMismatch, NotExecutable,
    MalformedNumber, UnboundVariable,
    clone, wrap_int, type_name, INT_BITS,
)
from catlang.cat_printer import display
from catlang.cat_trace import TraceRecorder, ExecFrame

_INTEGER_TEXT = re.compile(r"[+-]?[0-9]+")
_INT_MIN = -(1 << (INT_BITS - 1))
_INT_MAX = (1 << (INT_BITS - 1)) - 1


# -----------------------------------------------------------------
# Broadcasting
# -----------------------------------------------------------------

def auto_map(value: Any, func: Callable[[Any], Any]) -> Any:
    """Applies a scalar function to `value`, or to every scalar inside it if it is a stack."""
    if isinstance(value, list):
        return [auto_map(v, func) for v in value]
    return func(value)


def auto_map_pair(left: Any, right: Any, func: Callable[[Any, Any], Any]) -> Any:
    """Broadcasts a binary scalar function. The right operand is expanded first."""
    if isinstance(right, list):
        return [auto_map_pair(left, r, func) for r in right]
    if isinstance(left, list):
        return [auto_map_pair(l, right, func) for l in left]
    return func(left, right)


def auto_do(value: Any, func: Callable[[Any], None]):
    """Calls `func` for `value`, or for every scalar inside it, in order."""
    if isinstance(value, list):
        for v in value:
            auto_do(v, func)
    else:
        func(value)


# -----------------------------------------------------------------
# Scalar operations
# -----------------------------------------------------------------

def parse_integer(text: str) -> int:
    if not _INTEGER_TEXT.fullmatch(text):
        raise MalformedNumber(text)
    value = int(text)
    if not _INT_MIN <= value <= _INT_MAX:
        raise MalformedNumber(text)
    return value


def _add_scalar(left, right):
    match left, right:
        case int(), int():
            return wrap_int(left + right)
        case (int() | str()), (int() | str()):
            return str(left) + str(right)
        case _:
            raise TypeMismatch(f"Can't add {type_name(left)} and {type_name(right)}")


def _multiply_scalar(left, right):
    if isinstance(left, int) and isinstance(right, int):
        return wrap_int(left * right)
    bad = right if isinstance(left, int) else left
    raise TypeMismatch(f"Not a multiplicative type: {type_name(bad)}")


def _to_integer_scalar(value):
    match value:
        case int():
            return value
        case str():
            return parse_integer(value)
        case _:
            raise TypeMismatch(f"Can't convert {type_name(value)} to integer")


def _range_scalar(value):
    if not isinstance(value, int):
        raise TypeMismatch("Range requires integer parameters")
    return list(range(1, value + 1))


def _split_scalar(value, separator: str):
    if not isinstance(value, str):
        raise TypeMismatch("Split parameter isn't a string")
    if separator == "":
        return list(value)
    return value.split(separator)


def _join_stack(value, separator: str):
    if not isinstance(value, list):
        raise TypeMismatch("Join parameter isn't a stack")
    if value and all(isinstance(v, list) for v in value):
        return [_join_stack(v, separator) for v in value]
    return separator.join(display(v) for v in value)


def _stdin_read_line() -> str:
    sys.stdout.flush()
    line = sys.stdin.readline()
    if line.endswith("\n"):
        line = line[:-1]
    return line


class Interpreter:
    """The Catlang execution engine.

    State:
      main_stack   the primary value stack (top is the last element),
      side_stack   auxiliary storage for `p`, `o` and `~`,
      variables    single-character name -> value,
      block capture, active between a StartBlock and its matching CloseBlock,
      capture floor, the stack depth below which a scoped execution does
      not collect values.
    """

    def __init__(self, trace: bool = False,
                 read_line: Optional[Callable[[], str]] = None,
                 write: Optional[Callable[[str], Any]] = None):
        self.main_stack: List[Any] = []
        self.side_stack: List[Any] = []
        self.variables: dict = {}
        self.side_effects: List[dict] = []
        self.trace = trace
        self.recorder: Optional[TraceRecorder] = TraceRecorder() if trace else None
        self.read_line = read_line or _stdin_read_line
        self.write = write or sys.stdout.write
        self._block: Optional[List[Instruction]] = None
        self._block_depth = 0
        self._floor: Optional[int] = None

    def _dbg(self, *parts):
        if os.environ.get("CATLANG_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    @property
    def reading(self) -> bool:
        """True while a block is being captured."""
        return self._block is not None

    @property
    def exec_frames(self) -> List[ExecFrame]:
        return self.recorder.frames if self.recorder is not None else []

    def drain_frames(self) -> List[ExecFrame]:
        """Returns and forgets every trace frame emitted so far."""
        if self.recorder is None:
            return []
        return self.recorder.drain()

    # -----------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------

    def execute(self, commands: Iterable[Instruction]):
        for command in commands:
            self.execute_single(command)

    def execute_single(self, command: Instruction):
        """Executes one instruction. Raises ExecutionError on failure."""
        if self.recorder is not None:
            self.recorder.record(command, self.main_stack, self.reading, self._dispatch)
        else:
            self._dispatch(command)

    # -----------------------------------------------------------------
    # Stack primitives
    # -----------------------------------------------------------------

    def push(self, value: Any):
        self.main_stack.append(value)

    def pop(self) -> Any:
        if not self.main_stack:
            raise EmptyStack()
        # Popping at or below the floor shrinks what the scoped execution collects.
        if self._floor is not None and len(self.main_stack) <= self._floor:
            self._floor = len(self.main_stack) - 1
            self._dbg("floor lowered to", self._floor)
        return self.main_stack.pop()

    def _top(self) -> Any:
        if not self.main_stack:
            raise EmptyStack()
        return self.main_stack[-1]

    def _copy_nth(self, n: int) -> Any:
        if len(self.main_stack) <= n:
            raise EmptyStack()
        return clone(self.main_stack[-n - 1])

    def _swap(self, n1: int, n2: int):
        size = len(self.main_stack)
        if size <= n1 or size <= n2:
            raise EmptyStack()
        i, j = size - n1 - 1, size - n2 - 1
        self.main_stack[i], self.main_stack[j] = self.main_stack[j], self.main_stack[i]

    def _emit(self, text: str):
        self.side_effects.append({'topics': ['stdout'], 'message': text})
        self.write(text)

    # -----------------------------------------------------------------
    # Block capture
    # -----------------------------------------------------------------

    def _capture(self, command: Instruction):
        match command.op:
            case Op.START_BLOCK:
                self._block_depth += 1
                self._block.append(command)
            case Op.CLOSE_BLOCK:
                self._block_depth -= 1
                if self._block_depth == 0:
                    block, self._block = self._block, None
                    self._dbg("captured block of", len(block), "commands")
                    self.push(block)
                else:
                    self._block.append(command)
            case _:
                self._block.append(command)

    # -----------------------------------------------------------------
    # Scoped execution
    # -----------------------------------------------------------------

    def _execute_value(self, value: Any):
        match value:
            case Instruction():
                self.execute_single(value)
            case list():
                if not all(isinstance(v, Instruction) for v in value):
                    raise NotExecutable("Executed stack has non-command values")
                for command in value:
                    self.execute_single(command)
            case _:
                raise NotExecutable(f"Can't execute {type_name(value)}")

    def _collect(self, func: Callable[..., None], *args) -> List[Any]:
        """Runs `func` and removes everything it left above the capture floor."""
        outer = self._floor
        self._floor = len(self.main_stack)
        try:
            func(*args)
            floor = self._floor
            collected = self.main_stack[floor:]
            del self.main_stack[floor:]
        finally:
            self._floor = outer
        if outer is not None and floor < outer:
            self._floor = floor
        return collected

    def _apply(self, value: Any, func: Any):
        self.push(value)
        self._execute_value(func)

    def _iteration_source(self, value: Any) -> List[Any]:
        match value:
            case list():
                return value
            case str():
                return list(value)
            case _:
                raise TypeMismatch("Map parameter isn't a stack or a string")

    def _repeat(self, count: Any, func: Any):
        match count:
            case int():
                times = count
            case str():
                times = parse_integer(count)
            case _:
                raise TypeMismatch(f"Not an integer: {type_name(count)}")
        for _ in range(times):
            self._execute_value(func)

    # -----------------------------------------------------------------
    # In-place transforms
    # -----------------------------------------------------------------

    def _replace_top(self, func: Callable[[Any], Any]):
        """Replaces the top value with func(top). The slot is untouched if func fails."""
        self.main_stack[-1] = func(self._top())

    def _replace_top_with_separator(self, func: Callable[[Any, str], Any], label: str):
        floor = self._floor
        separator = self.pop()
        try:
            if not isinstance(separator, str):
                raise TypeMismatch(f"{label} parameter isn't a string")
            self._replace_top(lambda top: func(top, separator))
        except ExecutionError:
            # Leave the stack as it was before the instruction.
            self.push(separator)
            self._floor = floor
            raise

    # -----------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------

    def _dispatch(self, command: Instruction):
        if self._block is not None:
            self._capture(command)
            return
        self._dbg("exec", command)

        match command.op:
            case Op.START_BLOCK:
                self._block = []
                self._block_depth = 1
            case Op.CLOSE_BLOCK:
                raise UnbalancedBlock()
            case Op.CREATE_INTEGER | Op.CREATE_STRING | Op.CREATE_COMMAND:
                self.push(command.arg)
            case Op.READ_LINE:
                self.push(self.read_line())
            case Op.WRITE_LINE:
                self._emit(display(self.pop()) + "\n")
            case Op.WRITE:
                self._emit(display(self.pop()))
            case Op.ADD:
                right = self.pop()
                left = self.pop()
                if isinstance(left, list) and isinstance(right, list):
                    self.push(left + right)
                else:
                    self.push(auto_map_pair(left, right, _add_scalar))
            case Op.MULTIPLY:
                right = self.pop()
                left = self.pop()
                self.push(auto_map_pair(left, right, _multiply_scalar))
            case Op.EXECUTE:
                self._execute_value(self.pop())
            case Op.EXECUTE_SCOPED:
                value = self.pop()
                self.push(self._collect(self._execute_value, value))
            case Op.MAP:
                func = self.pop()
                values = self._iteration_source(self.pop())
                results = []
                for value in values:
                    result = self._collect(self._apply, value, func)
                    results.append(result[0] if len(result) == 1 else result)
                self.push(results)
            case Op.FOR_EACH:
                func = self.pop()
                for value in self._iteration_source(self.pop()):
                    self._apply(value, func)
            case Op.REPEAT:
                func = self.pop()
                count = self.pop()
                auto_do(count, lambda n: self._repeat(n, func))
            case Op.SPLIT:
                self._replace_top_with_separator(
                    lambda top, sep: auto_map(top, lambda v: _split_scalar(v, sep)), "Split")
            case Op.JOIN:
                self._replace_top_with_separator(_join_stack, "Join")
            case Op.TO_INTEGER:
                self._replace_top(lambda top: auto_map(top, _to_integer_scalar))
            case Op.RANGE:
                self._replace_top(lambda top: auto_map(top, _range_scalar))
            case Op.DUPLICATE:
                self.push(self._copy_nth(0))
            case Op.DUPLICATE_SECOND:
                self.push(self._copy_nth(1))
                self._swap(1, 0)
            case Op.DROP:
                self.pop()
            case Op.ROTATE:
                n = command.arg
                if len(self.main_stack) < n:
                    raise EmptyStack()
                for i in range(n - 1, 0, -1):
                    self._swap(i, i - 1)
            case Op.PUSH_SIDE:
                self.side_stack.append(self._copy_nth(0))
            case Op.POP_SIDE:
                if not self.side_stack:
                    raise EmptySideStack()
                self.push(self.side_stack.pop())
            case Op.CONSUME_SIDE:
                drained = list(self.side_stack)
                self.side_stack.clear()
                self.push(drained)
            case Op.BIND_VARIABLE:
                self.variables[command.arg] = self.pop()
            case Op.READ_VARIABLE:
                name, consume = command.arg
                if name not in self.variables:
                    raise UnboundVariable(name)
                if consume:
                    self.push(self.variables.pop(name))
                else:
                    self.push(clone(self.variables[name]))
