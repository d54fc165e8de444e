"""Incremental decoders turning provider response bodies into text fragments.

Every decoder is fed raw byte chunks exactly as they arrive from the HTTP body
and answers with the fragments completed by that chunk plus a ``done`` flag.
Chunk boundaries may fall anywhere, including inside a line or inside a
multi-byte UTF-8 sequence, so decoders buffer the unfinished tail between calls.

Line-oriented decoders share one loop and differ only in the line prefix, the
JSON path to the text delta and the shape of the terminal event. Lines that do
not carry the prefix, payloads that fail to parse, and events without text are
heartbeats or metadata and are skipped. A line-oriented body that ends without
its terminal event is incomplete; ``complete`` reports whether one was seen.
"""

import codecs
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from gateway_api.constants import COHERE_FRAGMENT_SIZE, SSE_DONE_SENTINEL
from gateway_api.errors import StreamError


@dataclass
class DecodedChunk:
    fragments: list[str] = field(default_factory=list)
    done: bool = False


class StreamDecoder(ABC):
    requires_terminal = False

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.done = False
        self.terminated = False

    @property
    def complete(self) -> bool:
        """Whether the body ended the way the provider ends a finished reply."""
        return self.terminated or (self.done and not self.requires_terminal)

    def feed(self, chunk: bytes) -> DecodedChunk:
        if self.done:
            return DecodedChunk(done=True)
        return self._consume(self._text.decode(chunk))

    def flush(self) -> DecodedChunk:
        """Drain whatever is buffered once the body has ended."""
        if self.done:
            return DecodedChunk(done=True)
        result = self._finish(self._text.decode(b"", final=True))
        self.done = True
        result.done = True
        return result

    @abstractmethod
    def _consume(self, text: str) -> DecodedChunk: ...

    @abstractmethod
    def _finish(self, text: str) -> DecodedChunk: ...


class LineStreamDecoder(StreamDecoder):
    prefix = "data:"
    requires_terminal = True

    def __init__(self) -> None:
        super().__init__()
        self._buffer = ""

    def _consume(self, text: str) -> DecodedChunk:
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode_lines(lines)

    def _finish(self, text: str) -> DecodedChunk:
        lines = [self._buffer + text]
        self._buffer = ""
        return self._decode_lines(lines)

    def _decode_lines(self, lines: list[str]) -> DecodedChunk:
        result = DecodedChunk()
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(self.prefix):
                continue
            payload = line[len(self.prefix) :].strip()
            if payload == SSE_DONE_SENTINEL:
                self.done = self.terminated = True
                break
            try:
                event = json.loads(payload)
            except ValueError:
                continue
            if not isinstance(event, dict):
                continue

            text = self.extract_text(event)
            if text:
                result.fragments.append(text)
            if self.is_terminal(event):
                self.done = self.terminated = True
                break

        result.done = self.done
        return result

    @abstractmethod
    def extract_text(self, event: dict[str, Any]) -> str | None: ...

    def is_terminal(self, event: dict[str, Any]) -> bool:
        return False


class OpenAIStreamDecoder(LineStreamDecoder):
    """Chat Completions SSE: ``choices[0].delta.content`` until ``[DONE]``."""

    def extract_text(self, event: dict[str, Any]) -> str | None:
        if "error" in event and not event.get("choices"):
            raise StreamError(_error_message(event["error"]))
        choices = event.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        content = (choices[0].get("delta") or {}).get("content")
        return content if isinstance(content, str) else None


class AnthropicStreamDecoder(LineStreamDecoder):
    """Messages API SSE: ``content_block_delta`` text until ``message_stop``."""

    def extract_text(self, event: dict[str, Any]) -> str | None:
        event_type = event.get("type")
        if event_type == "error":
            raise StreamError(_error_message(event.get("error")))
        if event_type != "content_block_delta":
            return None
        text = (event.get("delta") or {}).get("text")
        return text if isinstance(text, str) else None

    def is_terminal(self, event: dict[str, Any]) -> bool:
        return event.get("type") == "message_stop"


class GeminiStreamDecoder(LineStreamDecoder):
    """streamGenerateContent SSE: candidate parts until a ``finishReason``."""

    def extract_text(self, event: dict[str, Any]) -> str | None:
        if "error" in event:
            raise StreamError(_error_message(event["error"]))
        candidate = _first_candidate(event)
        if candidate is None:
            return None
        parts = (candidate.get("content") or {}).get("parts") or []
        return "".join(
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )

    def is_terminal(self, event: dict[str, Any]) -> bool:
        candidate = _first_candidate(event)
        return candidate is not None and bool(candidate.get("finishReason"))


class CohereBodyDecoder(StreamDecoder):
    """Single JSON body, re-emitted as fixed-size fragments once complete."""

    def __init__(self, fragment_size: int = COHERE_FRAGMENT_SIZE) -> None:
        super().__init__()
        self._fragment_size = fragment_size
        self._body = ""

    def _consume(self, text: str) -> DecodedChunk:
        self._body += text
        return DecodedChunk()

    def _finish(self, text: str) -> DecodedChunk:
        body = self._body + text
        self._body = ""
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise StreamError("Response body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise StreamError("Response body is not a JSON object")

        content = (payload.get("message") or {}).get("content") or []
        full_text = "".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and isinstance(item.get("text"), str)
        )
        size = self._fragment_size
        return DecodedChunk(
            fragments=[full_text[i : i + size] for i in range(0, len(full_text), size)]
        )


def _first_candidate(event: dict[str, Any]) -> dict[str, Any] | None:
    candidates = event.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return None


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("type") or error)
    return str(error)
