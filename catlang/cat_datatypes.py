"""
Defines the core data types for the Catlang runtime.

This module provides the closed instruction set produced by the parser,
the helpers for working with runtime values and the error taxonomy shared
by the parser and the interpreter.

Runtime values are plain Python objects:
  - int          an Integer (kept inside the signed 64-bit range),
  - str          a Text value,
  - list         a Stack of values (also used for captured blocks),
  - Instruction  a Command, i.e. a first-class quoted operator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

# =================================================================
# Errors
# =================================================================

class CatError(Exception):
    """Base class for every language-level error."""
    kind = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ParseError(CatError):
    """Raised when source text cannot be turned into instructions."""
    kind = "ParseError"


class UnexpectedCharacter(ParseError):
    def __init__(self, char: str):
        super().__init__(f"Unexpected character: {char}")
        self.char = char


class UnexpectedEnd(ParseError):
    def __init__(self, construct: Optional[str] = None):
        msg = "Unexpected end of input"
        if construct:
            msg = f"{msg} in {construct}"
        super().__init__(msg)
        self.char = None
        self.construct = construct


class UnterminatedBlock(ParseError):
    def __init__(self, opener: str):
        super().__init__(f"Unterminated block opened with {opener}")
        self.char = None
        self.opener = opener


class ExecutionError(CatError):
    """Raised when an instruction cannot be executed."""
    kind = "ExecutionError"


class EmptyStack(ExecutionError):
    def __init__(self):
        super().__init__("Pop from an empty stack")


class EmptySideStack(ExecutionError):
    def __init__(self):
        super().__init__("Pop from empty side stack")


class UnbalancedBlock(ExecutionError):
    def __init__(self):
        super().__init__("Closing outside a block")


class TypeMismatch(ExecutionError):
    pass


class NotExecutable(ExecutionError):
    pass


class MalformedNumber(ExecutionError):
    def __init__(self, text: str):
        super().__init__(f"String doesn't represent an integer: {text!r}")
        self.text = text


class UnboundVariable(ExecutionError):
    def __init__(self, name: str):
        super().__init__(f"Variable is not bound: {name}")
        self.name = name


# =================================================================
# Instruction Set
# =================================================================

class Op(Enum):
    """Every kind of instruction the interpreter understands."""
    CREATE_INTEGER = "CreateInteger"
    CREATE_STRING = "CreateString"
    CREATE_COMMAND = "CreateCommand"
    START_BLOCK = "StartBlock"
    CLOSE_BLOCK = "CloseBlock"
    READ_LINE = "ReadLine"
    WRITE_LINE = "WriteLine"
    WRITE = "Write"
    ADD = "Add"
    MULTIPLY = "Multiply"
    EXECUTE = "Execute"
    EXECUTE_SCOPED = "ExecuteScoped"
    MAP = "Map"
    FOR_EACH = "ForEach"
    REPEAT = "Repeat"
    SPLIT = "Split"
    JOIN = "Join"
    TO_INTEGER = "ToInteger"
    RANGE = "Range"
    DUPLICATE = "Duplicate"
    DUPLICATE_SECOND = "DuplicateSecond"
    DROP = "Drop"
    ROTATE = "Rotate"
    PUSH_SIDE = "PushSide"
    POP_SIDE = "PopSide"
    CONSUME_SIDE = "ConsumeSide"
    BIND_VARIABLE = "BindVariable"
    READ_VARIABLE = "ReadVariable"


@dataclass(frozen=True)
class Instruction:
    """A single parsed instruction: an `Op` plus its literal payload, if any.

    Payloads by op:
      CREATE_INTEGER  int
      CREATE_STRING   str
      CREATE_COMMAND  Instruction
      ROTATE          int (2 or 3)
      BIND_VARIABLE   one-character str
      READ_VARIABLE   (one-character str, consume: bool)
    """
    op: Op
    arg: Any = None

    def __repr__(self) -> str:
        match self.op:
            case Op.CREATE_INTEGER | Op.ROTATE:
                return f"{self.op.value}({self.arg})"
            case Op.CREATE_STRING:
                escaped = self.arg.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
                return f'{self.op.value}("{escaped}")'
            case Op.CREATE_COMMAND:
                return f"{self.op.value}({self.arg!r})"
            case Op.BIND_VARIABLE:
                return f"{self.op.value}({self.arg!r})"
            case Op.READ_VARIABLE:
                name, consume = self.arg
                label = "ConsumeVariable" if consume else self.op.value
                return f"{label}({name!r})"
            case _:
                return self.op.value


# Payload-free instructions are shared singletons.
START_BLOCK = Instruction(Op.START_BLOCK)
CLOSE_BLOCK = Instruction(Op.CLOSE_BLOCK)
EXECUTE_SCOPED = Instruction(Op.EXECUTE_SCOPED)


def integer(value: int) -> Instruction:
    return Instruction(Op.CREATE_INTEGER, wrap_int(value))


def string(value: str) -> Instruction:
    return Instruction(Op.CREATE_STRING, value)


def quoted(inner: Instruction) -> Instruction:
    return Instruction(Op.CREATE_COMMAND, inner)


def bind(name: str) -> Instruction:
    return Instruction(Op.BIND_VARIABLE, name)


def read(name: str, consume: bool = False) -> Instruction:
    return Instruction(Op.READ_VARIABLE, (name, consume))


# =================================================================
# Value helpers
# =================================================================

INT_BITS = 64
_INT_MOD = 1 << INT_BITS
_INT_HALF = 1 << (INT_BITS - 1)


def wrap_int(value: int) -> int:
    """Wraps an arbitrary Python int into the signed 64-bit range (two's complement)."""
    if -_INT_HALF <= value < _INT_HALF:
        return value
    return (value + _INT_HALF) % _INT_MOD - _INT_HALF


def clone(value: Any) -> Any:
    """Deep copy of a value. Only stacks are mutable, so only lists are copied."""
    if isinstance(value, list):
        return [clone(v) for v in value]
    return value


def is_executable(value: Any) -> bool:
    """True for a Command or a Stack holding only Commands."""
    if isinstance(value, Instruction):
        return True
    if isinstance(value, list):
        return all(isinstance(v, Instruction) for v in value)
    return False


def type_name(value: Any) -> str:
    match value:
        case int():
            return "integer"
        case str():
            return "string"
        case list():
            return "stack"
        case Instruction():
            return "command"
        case _:
            return type(value).__name__


Stack = List[Any]
