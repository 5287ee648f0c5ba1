from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from deferred_kernel.kernel.deferred import Deferred
from deferred_kernel.kernel.trace import ResumeTraceRecorder, error_info
from deferred_kernel.observability.domain.logging import LogMessage, LogSink, level_enabled

if TYPE_CHECKING:
    from deferred_kernel.ports.trace_sink import TraceSink


class CompletionSink(Protocol):
    # Callback receiving (sequence id, final state) when a managed sequence terminates.
    def __call__(self, sequence_id: int, final_state: Any) -> None:
        raise NotImplementedError("CompletionSink is a callback")


@dataclass
class DeferredManager:
    """Registry of running sequences advanced by an external tick.

    Every registered sequence gets a sequential integer id. ``resume_all()`` is
    meant to be called once per host tick (frame, turn, pump iteration) and
    executes exactly one unit of logic per sequence. Sequences that reach the
    end are dropped from the registry; their final state goes to
    ``completion_sink`` when one is configured.

    Step exceptions are not handled here: they propagate to the caller of
    ``resume``/``resume_all`` and the failing sequence keeps its last snapshot.
    """

    completion_sink: CompletionSink | None = None
    log_sink: LogSink | None = None
    min_level: str = "info"
    trace_recorder: ResumeTraceRecorder | None = None
    trace_sink: TraceSink | None = None
    _registry: dict[int, Deferred[Any]] = field(default_factory=dict, init=False)
    _resume_counts: dict[int, int] = field(default_factory=dict, init=False)
    _next_id: int = field(default=0, init=False)

    @property
    def count(self) -> int:
        return len(self._registry)

    def ids(self) -> list[int]:
        return sorted(self._registry)

    def has(self, sequence_id: int) -> bool:
        return sequence_id in self._registry

    def get(self, sequence_id: int) -> Deferred[Any] | None:
        # Snapshots are immutable, so handing them out never exposes manager internals.
        return self._registry.get(sequence_id)

    def run(self, deferred: Deferred[Any]) -> int:
        sequence_id = self._next_id
        self._next_id += 1
        self._registry[sequence_id] = deferred
        self._resume_counts[sequence_id] = 0
        self._log("info", "deferred.run", sequence_id=sequence_id, pending=len(deferred.pending))
        return sequence_id

    def cancel(self, sequence_id: int) -> bool:
        if sequence_id not in self._registry:
            return False
        self._drop(sequence_id)
        self._log("info", "deferred.cancelled", sequence_id=sequence_id)
        return True

    def resume(self, sequence_id: int) -> bool:
        current = self._registry.get(sequence_id)
        if current is None:
            return False
        if not current.can_resume:
            # Registered already terminal: nothing to run, report and drop.
            self._drop(sequence_id)
            self._complete(sequence_id, current.state)
            return False
        self._registry[sequence_id] = self._resume_one(sequence_id, current)
        if not self._registry[sequence_id].can_resume:
            final = self._drop(sequence_id)
            self._complete(sequence_id, final.state)
        return True

    def consume(self, sequence_id: int) -> Any | None:
        current = self._registry.get(sequence_id)
        if current is None:
            return None
        while current.can_resume:
            current = self._resume_one(sequence_id, current)
            self._registry[sequence_id] = current
        self._drop(sequence_id)
        self._complete(sequence_id, current.state)
        return current.state

    def resume_all(self) -> None:
        # One tick per sequence in id order; ids registered during the tick wait for the next one.
        for sequence_id in self.ids():
            if sequence_id in self._registry:
                self.resume(sequence_id)

    def consume_all(self) -> list[tuple[int, Any]]:
        results: list[tuple[int, Any]] = []
        for sequence_id in self.ids():
            if sequence_id in self._registry:
                results.append((sequence_id, self.consume(sequence_id)))
        return results

    def close(self) -> None:
        # Release file-backed sinks at the end of a run.
        if self.trace_sink is not None:
            self.trace_sink.flush()
            self.trace_sink.close()
        close_log = getattr(self.log_sink, "close", None)
        if callable(close_log):
            close_log()

    def _resume_one(self, sequence_id: int, current: Deferred[Any]) -> Deferred[Any]:
        resume_index = self._resume_counts.get(sequence_id, 0)
        span = None
        if self.trace_recorder is not None:
            span = self.trace_recorder.begin(sequence=current, sequence_id=sequence_id, resume_index=resume_index)
        try:
            result = current.resume()
        except Exception as exc:  # noqa: BLE001 - trace + rethrow, the sequence keeps its snapshot
            if self.trace_recorder is not None and span is not None:
                record = self.trace_recorder.finish(
                    span=span,
                    result=None,
                    status="error",
                    error=error_info(exc, where=span.step_name),
                )
                if self.trace_sink is not None:
                    self.trace_sink.emit(record)
            self._log("error", "deferred.failed", sequence_id=sequence_id, error=type(exc).__name__)
            raise
        if self.trace_recorder is not None and span is not None:
            record = self.trace_recorder.finish(span=span, result=result, status="ok", error=None)
            if self.trace_sink is not None:
                self.trace_sink.emit(record)
        self._resume_counts[sequence_id] = resume_index + 1
        self._log("debug", "deferred.resumed", sequence_id=sequence_id, pending=len(result.pending))
        return result

    def _drop(self, sequence_id: int) -> Deferred[Any]:
        self._resume_counts.pop(sequence_id, None)
        return self._registry.pop(sequence_id)

    def _complete(self, sequence_id: int, final_state: Any) -> None:
        self._log("info", "deferred.completed", sequence_id=sequence_id)
        if self.completion_sink is not None:
            self.completion_sink(sequence_id, final_state)

    def _log(self, level: str, message: str, **fields: object) -> None:
        if self.log_sink is None or not level_enabled(level, self.min_level):
            return
        self.log_sink.emit(LogMessage(level=level, message=message, fields=dict(fields)))
