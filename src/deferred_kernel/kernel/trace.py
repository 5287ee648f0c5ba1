from __future__ import annotations

import dataclasses
import hashlib
import json
from collections import deque
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, Literal

from deferred_kernel.kernel.deferred import Deferred
from deferred_kernel.kernel.step import step_name

SignatureMode = Literal["type_only", "repr", "hash"]


@dataclass(frozen=True, slots=True)
class StateSignature:
    # StateSignature captures the state's type plus an optional rendering or digest.
    type_name: str
    text: str | None
    hash: str | None


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    # ErrorInfo records a step exception raised during resume.
    type: str
    message: str
    where: str
    stack: str | None = None


@dataclass(frozen=True, slots=True)
class ResumeRecord:
    # ResumeRecord captures one resume of one managed sequence.
    sequence_id: int | None
    resume_index: int
    step_name: str
    t_enter: datetime
    t_exit: datetime
    duration_ms: float
    pending_before: int
    pending_after: int | None
    state_before: StateSignature
    state_after: StateSignature | None
    status: Literal["ok", "error"]
    error: ErrorInfo | None


@dataclass(frozen=True, slots=True)
class ResumeSpan:
    # Internal handle carried between begin() and finish().
    sequence_id: int | None
    resume_index: int
    step_name: str
    pending_before: int
    state_before: StateSignature
    t_enter: datetime


class ResumeTraceRecorder:
    # Builds ResumeRecord entries; the in-memory tape keeps only the latest max_records of them.
    def __init__(
        self,
        *,
        signature_mode: SignatureMode = "type_only",
        max_value_len: int = 256,
        max_records: int = 1000,
    ) -> None:
        self._signature_mode = signature_mode
        self._max_value_len = max_value_len
        self.records: deque[ResumeRecord] = deque(maxlen=max_records)

    def begin(self, *, sequence: Deferred[Any], sequence_id: int | None, resume_index: int) -> ResumeSpan:
        # The front step names the span; delegated steps run inside the same span.
        front = step_name(sequence.pending[0]) if sequence.pending else "<exhausted>"
        return ResumeSpan(
            sequence_id=sequence_id,
            resume_index=resume_index,
            step_name=front,
            pending_before=len(sequence.pending),
            state_before=self._signature(sequence.state),
            t_enter=datetime.now(tz=UTC),
        )

    def finish(
        self,
        *,
        span: ResumeSpan,
        result: Deferred[Any] | None,
        status: Literal["ok", "error"],
        error: ErrorInfo | None,
    ) -> ResumeRecord:
        t_exit = datetime.now(tz=UTC)
        record = ResumeRecord(
            sequence_id=span.sequence_id,
            resume_index=span.resume_index,
            step_name=span.step_name,
            t_enter=span.t_enter,
            t_exit=t_exit,
            duration_ms=(t_exit - span.t_enter).total_seconds() * 1000.0,
            pending_before=span.pending_before,
            pending_after=len(result.pending) if result is not None else None,
            state_before=span.state_before,
            state_after=self._signature(result.state) if result is not None else None,
            status=status,
            error=error,
        )
        self.records.append(record)
        return record

    def _signature(self, value: object) -> StateSignature:
        type_name = type(value).__name__
        text = None
        digest = None
        if self._signature_mode == "repr":
            text = _truncate(repr(value), self._max_value_len)
        if self._signature_mode == "hash":
            digest = _hash_state(value)
        return StateSignature(type_name=type_name, text=text, hash=digest)


def error_info(exc: BaseException, *, where: str) -> ErrorInfo:
    return ErrorInfo(type=type(exc).__name__, message=str(exc), where=where)


def json_default(obj: object) -> str:
    # Fallback for values json cannot encode natively (timestamps, decimals, enums).
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _canonical(value: object) -> object:
    # JSON-safe, order-independent view of a state: keys become their repr, sets become sorted lists.
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonical(dataclasses.asdict(value))
    if isinstance(value, dict):
        items = sorted(((repr(key), _canonical(item)) for key, item in value.items()), key=lambda pair: pair[0])
        return {key: item for key, item in items}
    if isinstance(value, (set, frozenset)):
        return sorted((_canonical(item) for item in value), key=repr)
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (Enum, type)):
        return repr(value)
    if hasattr(value, "__dict__"):
        return _canonical(dict(vars(value)))
    return str(value)


def _hash_state(value: object) -> str:
    # Hashing uses a deterministic JSON representation of the state.
    encoded = json.dumps(_canonical(value), separators=(",", ":"), default=json_default)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _truncate(text: str, max_len: int) -> str:
    if len(text) > max_len:
        return text[:max_len] + "...(truncated)"
    return text
