from __future__ import annotations

import json
from pathlib import Path

from deferred_kernel.observability.domain.logging import LogMessage


class StdoutLogSink:
    # Minimal structured log sink: one JSON object per line on stdout.
    def emit(self, message: LogMessage) -> None:
        print(json.dumps(_log_to_dict(message), separators=(",", ":"), ensure_ascii=False, default=str))


class JsonlLogSink:
    # File-backed structured log sink; appends and flushes every line.
    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._path.open("a", encoding="utf-8")

    def emit(self, message: LogMessage) -> None:
        payload = json.dumps(_log_to_dict(message), separators=(",", ":"), ensure_ascii=False, default=str)
        self._file.write(payload + "\n")
        self._file.flush()

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


class MemoryLogSink:
    # In-memory sink for tests and embedding hosts that inspect logs directly.
    def __init__(self) -> None:
        self.messages: list[LogMessage] = []

    def emit(self, message: LogMessage) -> None:
        self.messages.append(message)

    def names(self) -> list[str]:
        return [item.message for item in self.messages]


def build_log_sink(settings: dict[str, object]) -> StdoutLogSink | JsonlLogSink | MemoryLogSink | None:
    # Factory used by the composition root; "none" disables logging entirely.
    kind = settings.get("kind", "none")
    if kind == "none":
        return None
    if kind == "stdout":
        return StdoutLogSink()
    if kind == "memory":
        return MemoryLogSink()
    if kind == "jsonl":
        path = settings.get("path")
        if not isinstance(path, str) or not path:
            raise ValueError("logging.path must be a non-empty string for jsonl sink")
        return JsonlLogSink(Path(path))
    raise ValueError(f"Unsupported log sink kind: {kind}")


def _log_to_dict(message: LogMessage) -> dict[str, object]:
    return {
        "level": message.level,
        "message": message.message,
        "timestamp": message.timestamp.isoformat().replace("+00:00", "Z"),
        "fields": message.fields,
    }
