from catlang.cat_runtime import ScriptRunner, ExecutionResult, run
from catlang.cat_datatypes import integer, Instruction, Op


def quiet_runner(**kwargs):
    out = []
    runner = ScriptRunner(write=out.append, **kwargs)
    return runner, out


def test_success_reports_top_of_stack():
    runner, _ = quiet_runner()
    res = runner.handle_script("12 3 +")
    assert res.status == "success"
    assert res.value == 15
    assert res.stack == [15]
    assert res.instructions == [integer(12), integer(3), Instruction(Op.ADD)]
    assert res.format_error() == ""


def test_empty_program_has_no_value():
    res = run("", write=lambda s: None)
    assert res.status == "success"
    assert res.value is None
    assert res.stack == []


def test_hello_world_side_effects():
    runner, out = quiet_runner()
    res = runner.handle_script('"Hello, world!"W')
    assert "".join(out) == "Hello, world!\n"
    assert res.value is None
    assert res.side_effects == [{'topics': ['stdout'], 'message': "Hello, world!\n"}]


def test_parse_error_is_reported():
    res = run("}")
    assert res.status == "error"
    assert res.error_kind == "ParseError"
    assert res.error_message == "ParseError: Unexpected character: }"
    assert res.format_error() == "ParseError: Unexpected character: }"
    assert res.instructions == []


def test_execution_error_is_reported_with_stderr_effect():
    runner, _ = quiet_runner()
    res = runner.handle_script("1 ]")
    assert res.status == "error"
    assert res.format_error() == "ExecutionError: Closing outside a block"
    assert res.stack == [1]
    assert res.side_effects[-1] == {
        'topics': ['stderr'],
        'message': "ExecutionError: Closing outside a block",
    }


def test_format_error_adds_kind_once():
    res = ExecutionResult(status='error', error_message="boom", error_kind="ExecutionError")
    assert res.format_error() == "ExecutionError: boom"
    res = ExecutionResult(status='error', error_message=None)
    assert res.format_error() == "Unknown error"


def test_each_script_gets_a_fresh_interpreter():
    runner, _ = quiet_runner()
    runner.handle_script("5>a")
    res = runner.handle_script("1 2")
    assert res.stack == [1, 2]
    assert runner.interpreter.variables == {}


def test_trace_is_collected():
    runner, _ = quiet_runner(trace=True)
    res = runner.handle_script("(1 2)M2*")
    assert len(res.trace) == 10
    assert res.value == [2, 4]


def test_trace_includes_failing_frame():
    runner, _ = quiet_runner(trace=True)
    res = runner.handle_script("1 +")
    assert res.status == "error"
    assert len(res.trace) == 2
    assert res.trace[-1].error == "Pop from an empty stack"


def test_on_frames_receives_each_top_level_instruction():
    runner, _ = quiet_runner(trace=True)
    batches = []
    runner.on_frames = batches.append
    runner.handle_script("1 2+")
    assert [len(b) for b in batches] == [1, 1, 1]


def test_input_is_read_through_callback():
    lines = iter(["4", "5"])
    runner, _ = quiet_runner(read_line=lambda: next(lines))
    res = runner.handle_script("RIRI+")
    assert res.value == 9


def test_significant_whitespace_option():
    res = run('"a" "b"++', significant_whitespace=True)
    assert res.value == "a b"
