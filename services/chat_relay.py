"""
Windowed relay of model output to the browser.

Provider deltas arrive in arbitrary sizes. The relay buffers them and emits
slices of at most window_size characters, cut at the nearest paragraph
break, else sentence end, else whitespace. Once max_total_chars or
max_chunks is reached it emits a 'continuation' event and stops reading.

Event sequence: connected, content*, [continuation], complete
or: connected, content*, error
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 400
DEFAULT_MAX_TOTAL_CHARS = 16000
DEFAULT_MAX_CHUNKS = 200

_SENTENCE_END = re.compile(r"[.!?](?:[\"')\]]*)(?=\s)")


def find_break(text: str, window_size: int) -> int:
    """Index (exclusive) where the first slice of text should end."""
    if len(text) <= window_size:
        return len(text)
    window = text[:window_size]

    paragraph = window.rfind("\n\n")
    if paragraph > 0:
        return paragraph + 2

    sentence_end = -1
    for match in _SENTENCE_END.finditer(window):
        sentence_end = match.end()
    if sentence_end > 0:
        # keep the following whitespace with the finished sentence
        return sentence_end + 1 if sentence_end < len(window) else sentence_end

    newline = window.rfind("\n")
    space = window.rfind(" ")
    cut = max(newline, space)
    if cut > 0:
        return cut + 1

    return window_size


def sse_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class ChatRelay:
    def __init__(
        self,
        window_size: int = DEFAULT_WINDOW_SIZE,
        max_total_chars: int = DEFAULT_MAX_TOTAL_CHARS,
        max_chunks: int = DEFAULT_MAX_CHUNKS,
    ):
        self.window_size = window_size
        self.max_total_chars = max_total_chars
        self.max_chunks = max_chunks

    def relay(self, deltas: Iterable[str]) -> Iterator[Dict[str, Any]]:
        """Turn provider deltas into relay events (dicts)."""
        yield {"type": "connected"}

        buffer = ""
        emitted = []
        emitted_chars = 0
        chunks = 0
        stop_reason: Optional[str] = None

        def _take(limit: int) -> str:
            nonlocal buffer
            cut = find_break(buffer, min(self.window_size, limit))
            piece, buffer = buffer[:cut], buffer[cut:]
            return piece

        try:
            for delta in deltas:
                if not delta:
                    continue
                buffer += delta
                while len(buffer) >= self.window_size and stop_reason is None:
                    piece = _take(self.max_total_chars - emitted_chars)
                    emitted.append(piece)
                    emitted_chars += len(piece)
                    chunks += 1
                    yield {"type": "content", "content": piece}
                    stop_reason = self._ceiling(emitted_chars, chunks)
                if stop_reason is not None:
                    break

            while buffer and stop_reason is None:
                piece = _take(self.max_total_chars - emitted_chars)
                emitted.append(piece)
                emitted_chars += len(piece)
                chunks += 1
                yield {"type": "content", "content": piece}
                if buffer:
                    stop_reason = self._ceiling(emitted_chars, chunks)
        except Exception as e:
            logger.error(f"Chat stream failed after {emitted_chars} chars: {type(e).__name__}: {e}")
            yield {"type": "error", "message": "Failed to communicate with AI."}
            return

        if stop_reason is not None:
            yield {"type": "continuation", "reason": stop_reason, "emittedChars": emitted_chars}

        yield {"type": "complete", "fullContent": "".join(emitted)}

    def _ceiling(self, emitted_chars: int, chunks: int) -> Optional[str]:
        if emitted_chars >= self.max_total_chars:
            return "max_length"
        if chunks >= self.max_chunks:
            return "max_chunks"
        return None

    def relay_sse(self, deltas: Iterable[str]) -> Iterator[str]:
        for event in self.relay(deltas):
            yield sse_event(event)


def collect(deltas: Iterable[str]) -> str:
    """Non-streaming mode: join every delta."""
    return "".join(delta for delta in deltas if delta)
