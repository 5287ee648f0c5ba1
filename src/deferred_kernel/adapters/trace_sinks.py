from __future__ import annotations

import json
import os
import sys
from dataclasses import asdict
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from deferred_kernel.kernel.trace import ResumeRecord, json_default
from deferred_kernel.ports.trace_sink import TraceSink


def encode_record(record: ResumeRecord) -> str:
    # One compact JSON object; keys follow ResumeRecord field order, timestamps are RFC3339 UTC with Z.
    payload = asdict(record)
    payload["t_enter"] = _utc_z(record.t_enter)
    payload["t_exit"] = _utc_z(record.t_exit)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=json_default)


class JsonlTraceSink(TraceSink):
    """Appends one encoded ResumeRecord per line to a file.

    ``line`` mode writes every record at once and flushes the handle every
    ``flush_every_n`` records. ``batch`` mode holds encoded lines until
    ``flush_every_n`` of them are queued or ``flush()`` is called.
    ``fsync_every_n`` additionally forces the data to disk.
    """

    def __init__(
        self,
        *,
        path: Path,
        write_mode: Literal["line", "batch"] = "line",
        flush_every_n: int = 1,
        fsync_every_n: int | None = None,
    ) -> None:
        self._write_mode = write_mode
        self._every = max(1, flush_every_n)
        self._fsync_every = fsync_every_n
        self._written = 0
        self._queued: list[str] = []
        path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = path.open("a", encoding="utf-8")

    def emit(self, record: ResumeRecord) -> None:
        self._queued.append(encode_record(record))
        self._written += 1
        if self._write_mode == "line":
            self._drain()
            if self._written % self._every == 0:
                self._handle.flush()
        elif len(self._queued) >= self._every:
            self._drain()
        if self._fsync_every and self._written % self._fsync_every == 0:
            self._handle.flush()
            os.fsync(self._handle.fileno())

    def flush(self) -> None:
        self._drain()
        self._handle.flush()

    def close(self) -> None:
        if self._handle.closed:
            return
        self.flush()
        self._handle.close()

    def _drain(self) -> None:
        if self._queued:
            self._handle.write("".join(line + "\n" for line in self._queued))
            self._queued.clear()


class StdoutTraceSink(TraceSink):
    # Prints each encoded record on its own line.
    def emit(self, record: ResumeRecord) -> None:
        print(encode_record(record))

    def flush(self) -> None:
        sys.stdout.flush()

    def close(self) -> None:
        self.flush()


def _utc_z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")
