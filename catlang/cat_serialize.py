from __future__ import annotations

import json
from typing import Any

import yaml

from catlang.cat_datatypes import Instruction
from catlang.cat_trace import ExecFrame


def to_builtin(obj: Any) -> Any:
    """Convert runtime values and trace frames into plain JSON/YAML-friendly structures."""
    if isinstance(obj, ExecFrame):
        out = {
            'command': repr(obj.command),
            'reading': obj.reading,
            'stack_before': to_builtin(obj.stack_before),
            'stack_after': to_builtin(obj.stack_after),
            'inner_frames': [to_builtin(f) for f in obj.inner_frames],
        }
        if obj.error is not None:
            out['error'] = obj.error
        return out
    if isinstance(obj, Instruction):
        return {'command': repr(obj)}
    if isinstance(obj, (list, tuple)):
        return [to_builtin(x) for x in obj]
    return obj


def serialize(value: Any, *, fmt: str, pretty: bool = True) -> str:
    """
    Convert a value, stack or list of trace frames into text.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


__all__ = [
    "serialize",
    "to_builtin",
]
