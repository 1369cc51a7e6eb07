from pathlib import Path

import pytest

from pero.exceptions import ContentLoadError
from pero.restructure import (
    include_preamble,
    parse,
    rebuild_leading_trailing,
    recombine_session,
    recombine_with_original,
    start_end_split,
)
from pero.session import Session, ToolCall, Turn


def test_split_without_sentinels_keeps_whole_document():
    split = start_end_split("Q>>\nhello\n")

    assert split.main == "Q>>\nhello\n"
    assert split.leading is None
    assert split.trailing is None
    assert rebuild_leading_trailing(split.leading, split.main, split.trailing) == "Q>>\nhello\n"


def test_split_extracts_envelope():
    split = start_end_split("notes\n__START__\nQ>>\nhi\n__END__\nmore notes\n")

    assert split.leading == "notes\n"
    assert split.main == "Q>>\nhi\n"
    assert split.trailing == "more notes\n"


def test_split_uses_last_start_and_first_end():
    doc = "a\n__START__\nb\n__START__\nmain\n__END__\nc\n__END__\nd\n"
    split = start_end_split(doc)

    assert split.leading == "a\n__START__\nb\n"
    assert split.main == "main\n"
    assert split.trailing == "c\n__END__\nd\n"


def test_sentinel_must_start_a_line():
    split = start_end_split("text with __START__ inline\n")

    assert split.leading is None
    assert split.main == "text with __START__ inline\n"


def test_rebuild_places_envelope_around_content():
    assert rebuild_leading_trailing("head\n", "BODY", "tail\n") == "head\n__START__\n\nBODY\n__END__\ntail\n"


def test_rebuild_keeps_empty_leading_sentinel():
    split = start_end_split("__START__\nQ>>\nhi\n")

    assert split.leading == ""
    assert rebuild_leading_trailing(split.leading, "X", split.trailing) == "__START__\n\nX"


def test_parse_plain_text_is_single_user_turn():
    session = parse("foo")

    assert session == [Turn(role="user", content="foo")]


def test_parse_headerless_preface_before_question_is_system():
    session = parse("You are terse.\nQ>>\nHi there\n")

    assert [t.role for t in session] == ["system", "user"]
    assert session[0].content == "You are terse."
    assert session[1].content == "Hi there"


def test_parse_full_conversation():
    session = parse("S>>\nBe kind\nQ>>\nHi\nA>>\nHello!\nQ>>\nHow are you?\n")

    assert [(t.role, t.content) for t in session] == [
        ("system", "Be kind"),
        ("user", "Hi"),
        ("assistant", "Hello!"),
        ("user", "How are you?"),
    ]


def test_parse_skips_empty_turns_and_unknown_headers():
    session = parse("Q>>\n\nA>>\n   \nT>>\ntool noise\nQ>>\nreal\n")

    assert [(t.role, t.content) for t in session] == [("user", "real")]


def test_parse_interpolates_user_turns_and_keeps_raw_text(tmp_path: Path):
    (tmp_path / "notes.txt").write_text("abc", encoding="utf-8")

    session = parse("Q>>\nRead [txt[notes.txt]]\n", base_dir=tmp_path)

    turn = session[0]
    assert turn.raw == "Read [txt[notes.txt]]"
    assert turn.content == [
        {"type": "text", "text": "Read "},
        {"type": "text", "text": '<FILE path="notes.txt">\nabc\n</FILE>'},
    ]


def test_parse_does_not_interpolate_assistant_turns():
    session = parse("Q>>\nhi\nA>>\nsee [txt[missing.txt]]\n")

    assert session[1].content == "see [txt[missing.txt]]"


def test_recombine_session_omits_implied_first_header():
    assert recombine_session(parse("foo")) == "foo\n\n"
    assert recombine_session(parse("You are terse.\nQ>>\nHi\n")) == "You are terse.\n\nQ>>\n\nHi\n\n"


def test_recombine_session_skips_tool_traffic():
    session = Session([
        Turn(role="user", content="list files"),
        Turn(role="assistant", tool_calls=[ToolCall(id="c1", name="ls")]),
        Turn(role="tool", content="a.txt", tool_call_id="c1", name="ls"),
        Turn(role="assistant", content="There is a.txt"),
    ])

    assert recombine_session(session) == "list files\n\nA>>\n\nThere is a.txt\n\n"


def test_recombine_with_original_appends_answer_and_next_question():
    session = parse("Q>>\nHi\n").extended([Turn(role="assistant", content="Hello")])

    assert recombine_with_original(session, "Q>>\nHi\n") == "Q>>\nHi\n\n\nA>>\n\nHello\n\nQ>>\n\n"


def test_recombine_with_original_output_only():
    session = Session([Turn(role="user", content="Hi"), Turn(role="assistant", content="Hello")])

    assert recombine_with_original(session, "Q>>\nHi", output_only=True) == "Hello"


def test_recombine_with_original_marks_empty_answer():
    session = Session([Turn(role="user", content="Hi"), Turn(role="assistant", content="")])

    assert recombine_with_original(session, "Hi", output_only=True) == "×"


def test_recombine_with_original_includes_tool_block_and_reasoning():
    session = Session([
        Turn(role="user", content="list"),
        Turn(role="assistant", tool_calls=[ToolCall(id="c1", name="ls", arguments={"path": "/tmp"})]),
        Turn(role="tool", content="a\nb", tool_call_id="c1", name="ls"),
        Turn(role="assistant", content="Done", reasoning="checked"),
    ])

    output = recombine_with_original(
        session,
        "list",
        output_only=True,
        include_reasoning=True,
        include_tool="result",
    )

    assert output == (
        "@@.tools\n"
        "- ls:\n"
        "  path: /tmp\n"
        "  result: |\n"
        "    a\n"
        "    b\n"
        "@@\n"
        "\n"
        "\n@@.think\nchecked\n@@\n\n"
        "Done"
    )


def test_include_preamble_prefixes_files(tmp_path: Path):
    preamble = tmp_path / "pre.txt"
    preamble.write_text("S>>\nBe brief", encoding="utf-8")

    assert include_preamble("Q>>\nHi", [str(preamble)]) == "S>>\nBe brief\n\nQ>>\nHi"
    assert include_preamble("Q>>\nHi", []) == "Q>>\nHi"


def test_include_preamble_missing_file(tmp_path: Path):
    with pytest.raises(ContentLoadError):
        include_preamble("Q>>\nHi", [str(tmp_path / "nope.txt")])
