"""Loading user documents into memory as plain text."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

logger = logging.getLogger(__name__)

# Extensions offered by the file picker. Only text decoding is implemented,
# so PDF and DOCX binaries fail to decode.
ACCEPTED_EXTENSIONS: dict[str, str] = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


class ReadFailure(RuntimeError):
    """Raised when a selected file cannot be read or decoded as text."""


@dataclass(frozen=True)
class Document:
    """An in-memory document. Edits require loading the file again."""

    name: str
    content: str
    mime_type: str
    id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def char_count(self) -> int:
        return len(self.content)


def decode_document(name: str, raw: bytes) -> Document:
    """Decode raw file bytes as UTF-8 text."""
    suffix = Path(name).suffix.lower()
    mime_type = ACCEPTED_EXTENSIONS.get(suffix)
    if mime_type is None:
        accepted = ", ".join(sorted(ACCEPTED_EXTENSIONS))
        raise ReadFailure(f"Unsupported file type '{suffix or name}'. Accepted: {accepted}")

    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ReadFailure(f"Could not read '{name}' as text") from exc

    return Document(name=name, content=content, mime_type=mime_type)


async def read_document(path: str | Path) -> Document:
    """Read a file off the event loop and decode it."""
    path = Path(path).expanduser()
    try:
        raw = await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise ReadFailure(f"Could not open '{path.name}': {exc.strerror or exc}") from exc

    document = decode_document(path.name, raw)
    logger.debug(f"Read document {document.name} ({document.char_count} chars)")
    return document


__all__ = [
    "ACCEPTED_EXTENSIONS",
    "Document",
    "ReadFailure",
    "decode_document",
    "read_document",
]
