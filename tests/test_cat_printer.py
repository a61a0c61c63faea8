import pytest

from catlang.cat_printer import Printer, display, debug_display
from catlang.cat_datatypes import Instruction, Op, integer, string, quoted, read


@pytest.fixture
def printer():
    return Printer()

# Test cases: (id, object, expected display, expected debug display)
FORMAT_TEST_CASES = [
    ("int", 15, "15", "15"),
    ("negative_int", -3, "-3", "-3"),
    ("str", "hello", "hello", '"hello"'),
    ("str_with_newline", "a\nb", "a\nb", '"a\\nb"'),
    ("empty_stack", [], "[]", "[]"),
    ("stack", [1, "a", [2, "b"]], "[1 a [2 b]]", '[1 "a" [2 "b"]]'),
    ("command", Instruction(Op.ADD), "Add", "Add"),
    ("integer_command", integer(12), "CreateInteger(12)", "CreateInteger(12)"),
    ("string_command", string("x"), 'CreateString("x")', 'CreateString("x")'),
    ("quoted_command", quoted(Instruction(Op.MAP)), "CreateCommand(Map)", "CreateCommand(Map)"),
    ("rotate_command", Instruction(Op.ROTATE, 3), "Rotate(3)", "Rotate(3)"),
    ("consume_command", read("a", consume=True), "ConsumeVariable('a')", "ConsumeVariable('a')"),
    ("block", [integer(2), Instruction(Op.MULTIPLY)], "[CreateInteger(2) Multiply]", "[CreateInteger(2) Multiply]"),
]


@pytest.mark.parametrize("test_id, obj, shown, debug", FORMAT_TEST_CASES, ids=[c[0] for c in FORMAT_TEST_CASES])
def test_printer(printer, test_id, obj, shown, debug):
    assert printer.display(obj) == shown
    assert printer.debug_display(obj) == debug


def test_module_level_helpers():
    assert display(["x"]) == "[x]"
    assert debug_display(["x"]) == '["x"]'


def test_unknown_objects_use_repr(printer):
    assert printer.display(None) == "None"
