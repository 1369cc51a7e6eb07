from pero.session import Session, ToolCall, Turn
from pero.toolblock import (
    ToolCallEntry,
    extract_last_tool_phase,
    insert_tools_block,
    make_tools_block,
    serialize_entries,
)


def _session_with_two_phases() -> Session:
    return Session([
        Turn(role="user", content="go"),
        Turn(role="assistant", tool_calls=[ToolCall(id="a", name="first", arguments={"x": "1"})]),
        Turn(role="tool", content="one", tool_call_id="a", name="first"),
        Turn(role="assistant", tool_calls=[
            ToolCall(id="b", name="second", arguments={"n": 2}),
            ToolCall(id="c", name="third"),
        ]),
        Turn(role="tool", content="two", tool_call_id="b", name="second"),
        Turn(role="assistant", content="all done"),
    ])


def test_extract_last_tool_phase_only_reports_final_batch():
    entries = extract_last_tool_phase(_session_with_two_phases())

    assert entries == [
        ToolCallEntry(name="second", params={"n": "2"}, result="two"),
        ToolCallEntry(name="third", params={}, result=None),
    ]


def test_extract_last_tool_phase_without_tools():
    session = Session([Turn(role="user", content="hi"), Turn(role="assistant", content="hello")])

    assert extract_last_tool_phase(session) == []


def test_make_tools_block_none_mode_or_no_entries():
    entries = [ToolCallEntry(name="ls")]

    assert make_tools_block(entries, "none") is None
    assert make_tools_block([], "call") is None


def test_call_mode_omits_results():
    block = make_tools_block([ToolCallEntry(name="ls", params={"path": "/tmp"}, result="secret")], "call")

    assert block == "@@.tools\n- ls:\n  path: /tmp\n@@\n"


def test_values_with_yaml_specials_are_quoted():
    body = serialize_entries([ToolCallEntry(name="grep", params={"pattern": "a: b #c"})], "call")

    assert body == '- grep:\n  pattern: "a: b #c"\n'


def test_long_result_is_truncated_with_marker():
    entries = [ToolCallEntry(name="cat", result="x" * 300)]

    block = make_tools_block(entries, "result", max_per_result_chars=100)

    assert "x" * 100 + "\n" in block
    assert "x" * 101 not in block
    assert "[truncated to 100 chars; total=300]" in block


def test_total_cap_shrinks_per_result_cap():
    entries = [ToolCallEntry(name=f"t{i}", result="y" * 1000) for i in range(3)]

    block = make_tools_block(entries, "result", max_per_result_chars=1000, max_total_chars=1500)

    body = block[len("@@.tools\n"):-len("@@\n")]
    assert len(body) <= 1500
    assert block.count("total=1000]") == 3
    assert "tools block truncated" not in block


def test_total_cap_hard_truncates_when_shrinking_is_not_enough():
    entries = [ToolCallEntry(name=f"t{i}", result="y" * 1000) for i in range(3)]

    block = make_tools_block(entries, "result", max_per_result_chars=1000, max_total_chars=300)

    assert block.startswith("@@.tools\n")
    assert block.endswith("[tools block truncated to 300 chars]\n@@\n")


def test_insert_tools_block_placement():
    block = "@@.tools\n- ls:\n@@\n"

    assert insert_tools_block("answer", block, None, False, "top") == f"{block}\nanswer"
    assert insert_tools_block("answer", block, None, False, "bottom") == f"answer\n{block}"


def test_insert_reasoning_only_when_requested():
    assert insert_tools_block("answer", None, "thinking", False, "top") == "answer"
    assert insert_tools_block("answer", None, "thinking", True, "top") == "\n\n@@.think\nthinking\n@@\n\nanswer"
