"""Convert between the flat conversation document and a Session."""

import re
from dataclasses import dataclass
from pathlib import Path

from pero.exceptions import ContentLoadError
from pero.interpolate import AudioFormat, interpolate
from pero.logging import get_logger
from pero.session import Session, Turn
from pero.toolblock import (
    IncludeToolMode,
    ToolsPlacement,
    extract_last_tool_phase,
    insert_tools_block,
    make_tools_block,
)

log = get_logger(__name__)

START_SENTINEL = "__START__"
END_SENTINEL = "__END__"
EMPTY_ANSWER = "×"

_START_MARKER = re.compile(r"^__START__\s*\n", re.MULTILINE)
_END_MARKER = re.compile(r"^__END__\s*\n", re.MULTILINE)
_HEADER_RE = re.compile(r"^([A-Za-z])>>", re.MULTILINE)

HEADER_TO_ROLE = {"S": "system", "Q": "user", "A": "assistant"}
ROLE_TO_HEADER = {"system": "S", "user": "Q", "assistant": "A", "tool": "T"}
VISIBLE_ROLES = {"system", "user", "assistant"}
IMPLIED_INITIAL_ROLES = {"system", "user"}


@dataclass
class SplitDocument:
    """A document cut into its envelope and the conversation region."""

    main: str
    leading: str | None = None
    trailing: str | None = None


def start_end_split(text: str) -> SplitDocument:
    """Split a document around the ``__START__`` / ``__END__`` sentinels.

    The last start sentinel and the first end sentinel win, so repeated
    sentinels collapse into the envelope.
    """
    leading_chunks = _START_MARKER.split(text)
    tail = leading_chunks.pop()
    trailing_chunks = _END_MARKER.split(tail)
    main = trailing_chunks.pop(0)

    return SplitDocument(
        main=main,
        leading=f"{START_SENTINEL}\n".join(leading_chunks) if leading_chunks else None,
        trailing=f"{END_SENTINEL}\n".join(trailing_chunks) if trailing_chunks else None,
    )


def rebuild_leading_trailing(leading: str | None, content: str, trailing: str | None) -> str:
    """Put the envelope back around ``content``."""
    head = f"{leading}{START_SENTINEL}\n\n" if leading is not None else ""
    tail = f"\n{END_SENTINEL}\n{trailing}" if trailing is not None else ""
    return f"{head}{content}{tail}"


def include_preamble(main: str, preamble: list[str]) -> str:
    """Prefix ``main`` with the contents of the preamble files."""
    if not preamble:
        return main
    contents: list[str] = []
    for path in preamble:
        try:
            contents.append(Path(path).expanduser().read_text(encoding="utf-8"))
        except OSError as e:
            raise ContentLoadError(path, e.strerror or str(e)) from e
    log.debug("Including preamble", files=preamble)
    return "\n\n".join(contents) + f"\n\n{main}"


def _pair(text: str) -> list[tuple[str, str]]:
    """Cut ``text`` into (header, content) chunks.

    The headerless first chunk gets ``S`` when the first real header is
    ``Q`` and ``Q`` otherwise.
    """
    pieces = _HEADER_RE.split(text)
    headers = pieces[1::2]
    contents = pieces[0::2]
    first_key = "S" if headers and headers[0] == "Q" else "Q"
    return list(zip([first_key, *headers], (c.strip() for c in contents)))


def parse(text: str, audio_format: AudioFormat = "openai", base_dir: Path | str | None = None) -> Session:
    """Parse the conversation region into a Session."""
    session = Session()
    for key, content in _pair(text):
        role = HEADER_TO_ROLE.get(key)
        if not content or role is None:
            continue
        if role == "user":
            parts = interpolate(content, audio_format=audio_format, base_dir=base_dir)
            if len(parts) == 1 and parts[0]["type"] == "text" and parts[0]["text"] == content:
                session.append(Turn(role="user", content=content))
            else:
                session.append(Turn(role="user", content=parts, raw=content))
        else:
            session.append(Turn(role=role, content=content))
    return session


def recombine_session(session: Session) -> str:
    """Render a session back to headered text.

    Tool turns and tool-request turns are protocol-internal and are left out.
    """
    result = ""
    for index in range(len(session) - 1, -1, -1):
        turn = session[index]
        if turn.role not in VISIBLE_ROLES or turn.is_tool_request:
            continue
        show_header = index != 0 or turn.role not in IMPLIED_INITIAL_ROLES
        header = f"{ROLE_TO_HEADER[turn.role]}>>\n\n" if show_header else ""
        result = f"{header}{turn.text}\n\n{result}"
    return result


def recombine_with_original(
    session: Session,
    original: str,
    output_only: bool = False,
    include_reasoning: bool = False,
    include_tool: IncludeToolMode = "none",
    tools_placement: ToolsPlacement = "top",
    max_per_result_chars: int = 22000,
    max_total_chars: int = 60000,
) -> str:
    """Append the final answer to the original text, ready for the next question."""
    final = session.last
    answer = (final.text if final else "") or EMPTY_ANSWER

    tools_block = make_tools_block(
        extract_last_tool_phase(session),
        mode=include_tool,
        max_per_result_chars=max_per_result_chars,
        max_total_chars=max_total_chars,
    )
    reasoning = final.reasoning if final else None
    output = insert_tools_block(answer, tools_block, reasoning, include_reasoning, tools_placement)

    if output_only:
        return output
    return f"{original}\n\nA>>\n\n{output}\n\nQ>>\n\n"
