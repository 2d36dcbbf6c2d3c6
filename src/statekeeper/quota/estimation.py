"""
Heuristic token estimation for chat usage accounting.

Token counts are approximated at a fixed characters-per-token ratio. Chat
messages arrive in loosely-typed shapes, so message parts are first parsed
into a closed set of variants before their text is extracted.
"""

from __future__ import annotations

import codecs
import inspect
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens_from_text(text: str) -> int:
    """Estimate tokens at ~4 characters per token (at least 1)."""
    return math.ceil(max(1, len(text) / CHARS_PER_TOKEN))


# --- Message parts ---


@dataclass(frozen=True)
class TextPart:
    """A part carrying a ``text`` string."""

    text: str


@dataclass(frozen=True)
class ValuePart:
    """A ``{"type": "text", "value": ...}`` part."""

    value: str


@dataclass(frozen=True)
class UnknownPart:
    """Any other part; counted by its JSON representation."""

    raw: Any


MessagePart = Union[TextPart, ValuePart, UnknownPart]


def parse_part(part: Any) -> MessagePart:
    if isinstance(part, dict):
        text = part.get("text")
        if isinstance(text, str):
            return TextPart(text)
        value = part.get("value")
        if part.get("type") == "text" and isinstance(value, str):
            return ValuePart(value)
    return UnknownPart(part)


def part_text(part: MessagePart) -> str:
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, ValuePart):
        return part.value
    return json.dumps(part.raw, default=str, separators=(",", ":"))


def flatten_parts(parts: Any) -> str:
    """Join the text of a list of message parts with single spaces."""
    if not isinstance(parts, list):
        return ""
    return " ".join(part_text(parse_part(p)) for p in parts)


def message_text(message: Any) -> str:
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content
    return flatten_parts(content)


def estimate_input_tokens_from_messages(
    messages: list[Any],
    system_prompt: str | None = None,
) -> int:
    """
    Estimate prompt tokens for a chat request.

    Args:
        messages: Chat messages; ``content`` may be a string or a list of parts
        system_prompt: Optional system prompt appended to the message text

    Returns:
        Estimated input token count
    """
    text = " ".join(message_text(m) for m in messages) + (system_prompt or "")
    return estimate_tokens_from_text(text)


# --- Streaming counter ---

OnClose = Callable[[int], Union[None, Awaitable[None]]]


class HeuristicTokenCounter:
    """
    Counts output tokens of a byte stream while passing it through unchanged.

    ``close()`` is idempotent: the completion callback fires exactly once,
    whether the stream finished or the caller aborted it, and callback
    errors are logged and suppressed so they cannot break the response.
    """

    def __init__(
        self,
        initial_input_tokens: int = 0,
        on_close: OnClose | None = None,
    ) -> None:
        self._initial = max(0, initial_input_tokens)
        self._on_close = on_close
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._accumulated = ""
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def get_total(self) -> int:
        """Input tokens plus the output estimated so far."""
        return self._initial + estimate_tokens_from_text(self._accumulated)

    def feed(self, chunk: bytes) -> bytes:
        """Account for a chunk and return it unmodified."""
        self._accumulated += self._decoder.decode(chunk)
        return chunk

    async def wrap(self, stream: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        """Pass ``stream`` through, closing the counter however iteration ends."""
        try:
            async for chunk in stream:
                yield self.feed(chunk)
        finally:
            await self.close()

    async def close(self) -> int:
        """Finalize the count, fire ``on_close`` once, and return the total."""
        if self._closed:
            return self.get_total()
        self._closed = True
        self._accumulated += self._decoder.decode(b"", final=True)
        total = self.get_total()

        if self._on_close is not None:
            try:
                outcome = self._on_close(total)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(f"Token counter close callback failed: {e}")
        return total
