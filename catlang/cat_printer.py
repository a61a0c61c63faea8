"""
Renders Catlang values as text.
"""
from typing import Any

from catlang.cat_datatypes import Instruction


class Printer:
    """Formats runtime values for output (`display`) and for traces (`debug_display`)."""

    def __init__(self):
        self._handlers = {
            int: self._display_int,
            str: self._display_str,
            list: self._display_stack,
            Instruction: self._display_command,
        }

    def display(self, obj: Any) -> str:
        """Integers as decimal, text raw, stacks bracketed, commands by instruction name."""
        handler = self._handlers.get(type(obj))
        if handler is None:
            return repr(obj)
        return handler(obj, debug=False)

    def debug_display(self, obj: Any) -> str:
        """As `display`, but text is quoted and newlines are escaped."""
        handler = self._handlers.get(type(obj))
        if handler is None:
            return repr(obj)
        return handler(obj, debug=True)

    def _display_int(self, obj, debug):
        return str(obj)

    def _display_str(self, obj, debug):
        if not debug:
            return obj
        return '"' + obj.replace("\n", "\\n") + '"'

    def _display_stack(self, obj, debug):
        render = self.debug_display if debug else self.display
        return "[" + " ".join(render(v) for v in obj) + "]"

    def _display_command(self, obj, debug):
        return repr(obj)


_printer = Printer()


def display(value: Any) -> str:
    return _printer.display(value)


def debug_display(value: Any) -> str:
    return _printer.debug_display(value)
