"""
Execution tracing: records one frame per dispatched instruction, nesting the
frames produced by combinators and block execution under the instruction
that caused them.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from catlang.cat_datatypes import Instruction, CatError, clone
from catlang.cat_printer import debug_display


@dataclass
class ExecFrame:
    stack_before: List[Any]
    stack_after: List[Any]
    reading: bool
    command: Instruction
    inner_frames: List['ExecFrame'] = field(default_factory=list)
    error: Optional[str] = None


class TraceRecorder:
    """Collects ExecFrames for one interpreter.

    `frames` holds the frames emitted so far. A dispatch that runs nested
    instructions takes every frame emitted after it started as its children.
    """

    def __init__(self):
        self.frames: List[ExecFrame] = []

    def record(self, command: Instruction, stack: List[Any], reading: bool,
               dispatch: Callable[[Instruction], None]):
        stack_before = clone(stack)
        mark = len(self.frames)
        error = None
        try:
            dispatch(command)
        except CatError as e:
            error = e.message
            raise
        finally:
            inner_frames = self.frames[mark:]
            del self.frames[mark:]
            self.frames.append(ExecFrame(
                stack_before=stack_before,
                stack_after=clone(stack),
                reading=reading,
                command=command,
                inner_frames=inner_frames,
                error=error,
            ))

    def drain(self) -> List[ExecFrame]:
        frames, self.frames = self.frames, []
        return frames


def _tail(text: str, width: int) -> str:
    if len(text) > width:
        return "..." + text[-width:]
    return text


def format_frame(frame: ExecFrame, depth: int = 0) -> List[str]:
    command = f"{'  ' * depth}{frame.command!r}"
    line = (
        f">  {command:<40} {'(read)' if frame.reading else '      '}"
        f" | Stack before: {_tail(debug_display(frame.stack_before), 37):<40}"
        f" | Stack after: {debug_display(frame.stack_after)}"
    )
    if frame.error:
        line += f" | Error: {frame.error}"
    lines = [line]
    for inner in frame.inner_frames:
        lines.extend(format_frame(inner, depth + 1))
    return lines


def format_trace(frames: List[ExecFrame]) -> str:
    """Renders frames one per line, children indented two spaces per level."""
    lines: List[str] = []
    for frame in frames:
        lines.extend(format_frame(frame))
    return "\n".join(lines)
