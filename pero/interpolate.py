"""Expand inline reference tags into typed content parts.

Two syntaxes are recognised, in document order:

* ``[type[payload]]`` for the registered types ``txt``, ``img`` and ``audio``
* markdown images ``![alt](src)``

Audio is emitted as a text part carrying an ``<AUDIO_FILE>`` marker; the
provider turns it into the backend-specific audio part right before sending,
because the interpolator only knows the audio format the caller passed in.
"""

import base64
import json
import re
from pathlib import Path
from typing import Callable, Literal

from pero.exceptions import ContentLoadError, UnsupportedReferenceError
from pero.logging import get_logger
from pero.session import ContentPart

log = get_logger(__name__)

AudioFormat = Literal["openai", "gemini"]

_REFERENCE_RE = re.compile(
    r"\[(?P<type>\w+)\[(?P<payload>[^\]]+)\]\]"
    r"|!\[(?P<alt>[^\]]*)\]\((?P<src>[^)\s]+)\)"
)
_URL_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)

AUDIO_MARKER_RE = re.compile(r'^<AUDIO_FILE path="(?P<path>[^"]*)" metadata="(?P<metadata>[^"]+)"></AUDIO_FILE>$')

IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".svg": "image/svg+xml",
}

AUDIO_MIME_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".webm": "audio/webm",
}


def _read_bytes(path: str, base_dir: Path | None) -> bytes:
    file_path = Path(path).expanduser()
    if base_dir is not None and not file_path.is_absolute():
        file_path = base_dir / file_path
    try:
        return file_path.read_bytes()
    except OSError as e:
        raise ContentLoadError(path, e.strerror or str(e)) from e


def pack_text(text: str) -> ContentPart:
    return {"type": "text", "text": text}


def load_text(path: str, base_dir: Path | None = None) -> ContentPart:
    """Inline a local text file as a delimited text part."""
    raw = _read_bytes(path, base_dir)
    content = raw.decode("utf-8", errors="replace")
    return pack_text(f'<FILE path="{path}">\n{content}\n</FILE>')


def load_image(src: str, base_dir: Path | None = None) -> ContentPart:
    """Reference an image by URL or embed a local one as a data URI."""
    if _URL_RE.match(src):
        return {"type": "image_url", "image_url": {"url": src}}
    data = base64.b64encode(_read_bytes(src, base_dir)).decode("ascii")
    mime_type = IMAGE_MIME_TYPES.get(Path(src).suffix.lower(), "image/png")
    return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{data}"}}


def load_audio(path: str, audio_format: AudioFormat = "openai", base_dir: Path | None = None) -> ContentPart:
    """Embed a local audio file as an ``<AUDIO_FILE>`` marker part."""
    if _URL_RE.match(path):
        raise UnsupportedReferenceError("audio", path)
    data = base64.b64encode(_read_bytes(path, base_dir)).decode("ascii")
    extension = Path(path).suffix.lower()
    metadata = {
        "isAudio": True,
        "mimeType": AUDIO_MIME_TYPES.get(extension, "audio/wav"),
        "extension": extension,
        "audioFormat": audio_format,
        "data": data,
    }
    encoded = base64.b64encode(json.dumps(metadata).encode("utf-8")).decode("ascii")
    return pack_text(f'<AUDIO_FILE path="{path}" metadata="{encoded}"></AUDIO_FILE>')


def decode_audio_marker(text: str) -> dict | None:
    """Return audio metadata if ``text`` is exactly one audio marker."""
    match = AUDIO_MARKER_RE.match(text)
    if not match:
        return None
    try:
        metadata = json.loads(base64.b64decode(match.group("metadata")))
    except (ValueError, TypeError):
        return None
    if not isinstance(metadata, dict) or not metadata.get("isAudio"):
        return None
    return metadata


def interpolate(
    text: str,
    audio_format: AudioFormat = "openai",
    base_dir: Path | str | None = None,
) -> list[ContentPart]:
    """Expand references in ``text`` into an ordered list of content parts.

    Args:
        text: Raw turn text
        audio_format: Audio encoding expected by the active backend
        base_dir: Directory relative paths are resolved against (default: cwd)

    Returns:
        Content parts; whitespace-only text parts are dropped

    Raises:
        ContentLoadError: a referenced local file cannot be read
        UnsupportedReferenceError: a remote audio reference
    """
    base = Path(base_dir) if base_dir is not None else None
    loaders: dict[str, Callable[[str], ContentPart]] = {
        "txt": lambda payload: load_text(payload, base),
        "img": lambda payload: load_image(payload, base),
        "audio": lambda payload: load_audio(payload, audio_format, base),
    }

    parts: list[ContentPart] = []
    pending = ""

    def flush() -> None:
        nonlocal pending
        if pending.strip():
            parts.append(pack_text(pending))
        pending = ""

    last_index = 0
    for match in _REFERENCE_RE.finditer(text):
        pending += text[last_index:match.start()]
        last_index = match.end()

        if match.group("src") is not None:
            flush()
            parts.append(load_image(match.group("src"), base))
            continue

        kind = match.group("type")
        loader = loaders.get(kind)
        if loader is None:
            log.debug("Unknown reference tag left as text", tag=kind)
            pending += match.group(0)
            continue

        flush()
        parts.append(loader(match.group("payload")))

    pending += text[last_index:]
    flush()
    return parts
