"""Output sinks receiving build output as it streams."""

from __future__ import annotations

import sys
import threading
from typing import Protocol, TextIO, runtime_checkable


@runtime_checkable
class OutputSink(Protocol):
    def append(self, text: str) -> None: ...

    def append_line(self, text: str) -> None: ...

    def clear(self) -> None: ...


class NullSink:
    def append(self, text: str) -> None:
        return None

    def append_line(self, text: str) -> None:
        return None

    def clear(self) -> None:
        return None


class MemorySink:
    """Collects output in memory; ``chunks`` keeps arrival order for inspection."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.chunks: list[str] = []

    def append(self, text: str) -> None:
        with self._lock:
            self.chunks.append(text)

    def append_line(self, text: str) -> None:
        self.append(f"{text}\n")

    def clear(self) -> None:
        with self._lock:
            self.chunks.clear()

    @property
    def text(self) -> str:
        with self._lock:
            return "".join(self.chunks)


class StreamSink:
    """Writes straight through to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def append(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()

    def append_line(self, text: str) -> None:
        self.append(f"{text}\n")

    def clear(self) -> None:
        return None


__all__ = ["MemorySink", "NullSink", "OutputSink", "StreamSink"]
