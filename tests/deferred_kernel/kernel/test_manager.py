from __future__ import annotations

from pathlib import Path

import pytest

from deferred_kernel.kernel.context import State, StepContext
from deferred_kernel.kernel.deferred import Deferred
from deferred_kernel.kernel.manager import DeferredManager
from deferred_kernel.kernel.step import Call, Map
from deferred_kernel.kernel.trace import ResumeTraceRecorder
from deferred_kernel.observability.adapters.logging import JsonlLogSink, MemoryLogSink


class _Flag:
    # Mutable flag shared between a step and the test, like a host-owned resource.
    def __init__(self) -> None:
        self.value = False


def _set_flag(ctx: StepContext[_Flag]) -> State[_Flag]:
    ctx.state.value = True
    return ctx.keep()


def _two_ticks(flag: _Flag) -> Deferred[_Flag]:
    return Deferred.of(flag, lambda ctx: ctx.keep(), _set_flag)


def _one_tick(flag: _Flag) -> Deferred[_Flag]:
    return Deferred.of(flag, _set_flag)


def test_resume_all_advances_each_sequence_one_step() -> None:
    # One tick runs one step per sequence and drops the ones that finish.
    manager = DeferredManager()
    flag, flag2 = _Flag(), _Flag()
    assert manager.count == 0

    sid = manager.run(_two_ticks(flag))
    sid2 = manager.run(_one_tick(flag2))
    assert manager.count == 2
    assert manager.has(sid) and manager.has(sid2)
    assert not flag.value and not flag2.value

    manager.resume_all()
    assert manager.count == 1
    assert manager.has(sid)
    assert not manager.has(sid2)
    assert not flag.value
    assert flag2.value

    manager.resume_all()
    assert manager.count == 0
    assert not manager.has(sid)
    assert flag.value


def test_consume_all_drains_registry_in_id_order() -> None:
    # consume_all finishes every sequence and returns (id, final state) pairs.
    manager = DeferredManager()
    first = manager.run(Deferred.of(1, Map(lambda v: v + 1)))
    second = manager.run(Deferred.of(10, Map(lambda v: v * 3)))
    assert manager.consume_all() == [(first, 2), (second, 30)]
    assert manager.count == 0


def test_ids_are_sequential_and_never_reused() -> None:
    # Ids are handed out in order, also after earlier sequences finished.
    manager = DeferredManager()
    a = manager.run(Deferred(0))
    manager.cancel(a)
    b = manager.run(Deferred(0))
    assert (a, b) == (0, 1)


def test_cancel_drops_without_running() -> None:
    # Cancelling between ticks removes the sequence; its steps never run.
    manager = DeferredManager()
    flag = _Flag()
    sid = manager.run(_one_tick(flag))
    assert manager.cancel(sid)
    assert not manager.has(sid)
    assert not manager.cancel(sid)
    manager.resume_all()
    assert not flag.value


def test_resume_single_sequence() -> None:
    # resume(id) runs one step and reports whether anything ran.
    manager = DeferredManager()
    sid = manager.run(Deferred.of(1, Map(lambda v: v + 1), Map(lambda v: v + 1)))
    assert manager.resume(sid)
    snapshot = manager.get(sid)
    assert snapshot is not None and snapshot.state == 2
    assert manager.resume(sid)
    assert not manager.has(sid)
    assert not manager.resume(sid)
    assert not manager.resume(999)


def test_consume_single_sequence() -> None:
    # consume(id) runs a sequence to the end, including delegated steps.
    manager = DeferredManager()
    sid = manager.run(
        Deferred.of(1, Map(lambda v: v + 1), Call(lambda v: Deferred.of(v, Map(lambda s: s * 2))), Map(lambda v: v + 2))
    )
    assert manager.consume(sid) == 6
    assert not manager.has(sid)
    assert manager.consume(sid) is None


def test_terminal_sequence_is_reported_not_resumed() -> None:
    # A sequence registered already terminal completes without running anything.
    done: list[tuple[int, object]] = []
    manager = DeferredManager(completion_sink=lambda sid, final: done.append((sid, final)))
    sid = manager.run(Deferred("idle"))
    assert not manager.resume(sid)
    assert not manager.has(sid)
    assert done == [(sid, "idle")]


def test_completion_sink_receives_final_states() -> None:
    # Finished sequences report their final state exactly once.
    done: list[tuple[int, object]] = []
    manager = DeferredManager(completion_sink=lambda sid, final: done.append((sid, final)))
    a = manager.run(Deferred.of(1, Map(lambda v: v + 1)))
    b = manager.run(Deferred.of(1, Map(lambda v: v + 1), Map(lambda v: v + 1)))
    manager.resume_all()
    manager.resume_all()
    assert done == [(a, 2), (b, 3)]


def test_step_failure_keeps_last_snapshot() -> None:
    # A failing step propagates; the sequence stays registered at its previous state.
    def boom(ctx: StepContext[int]) -> State[int]:
        raise RuntimeError("boom")

    manager = DeferredManager()
    sid = manager.run(Deferred.of(1, Map(lambda v: v + 1), boom))
    manager.resume(sid)
    with pytest.raises(RuntimeError, match="boom"):
        manager.resume(sid)
    snapshot = manager.get(sid)
    assert snapshot is not None
    assert snapshot.state == 2
    assert snapshot.can_resume


def test_manager_logs_lifecycle_events() -> None:
    # Lifecycle is logged at info; per-resume events only at debug.
    sink = MemoryLogSink()
    manager = DeferredManager(log_sink=sink)
    sid = manager.run(Deferred.of(1, Map(lambda v: v + 1)))
    other = manager.run(Deferred.of(1, Map(lambda v: v + 1)))
    manager.resume(sid)
    manager.cancel(other)
    assert sink.names() == ["deferred.run", "deferred.run", "deferred.completed", "deferred.cancelled"]
    assert sink.messages[0].fields == {"sequence_id": sid, "pending": 1}

    debug_sink = MemoryLogSink()
    verbose = DeferredManager(log_sink=debug_sink, min_level="debug")
    verbose.consume(verbose.run(Deferred.of(1, Map(lambda v: v + 1))))
    assert "deferred.resumed" in debug_sink.names()


def test_manager_records_resume_traces() -> None:
    # Each managed resume produces one trace record with queue sizes before/after.
    recorder = ResumeTraceRecorder()
    manager = DeferredManager(trace_recorder=recorder)
    sid = manager.run(Deferred.of(1, Map(lambda v: v + 1), Call(lambda v: Deferred.of(v, Map(lambda s: s * 2)))))
    manager.consume(sid)
    assert [r.resume_index for r in recorder.records] == [0, 1]
    assert [(r.pending_before, r.pending_after) for r in recorder.records] == [(2, 1), (1, 0)]
    assert all(r.status == "ok" for r in recorder.records)
    assert recorder.records[0].sequence_id == sid
    assert recorder.records[0].state_before.type_name == "int"


def test_manager_traces_step_errors() -> None:
    # Failing resumes are recorded with status=error before the exception propagates.
    def boom(ctx: StepContext[int]) -> State[int]:
        raise ValueError("bad")

    recorder = ResumeTraceRecorder()
    manager = DeferredManager(trace_recorder=recorder)
    sid = manager.run(Deferred.of(1, boom))
    with pytest.raises(ValueError):
        manager.resume(sid)
    record = recorder.records[-1]
    assert record.status == "error"
    assert record.error is not None
    assert record.error.type == "ValueError"
    assert record.error.message == "bad"
    assert record.pending_after is None


def test_manager_hash_tracing_handles_grid_state() -> None:
    # Hash-mode tracing works for states keyed by coordinates.
    recorder = ResumeTraceRecorder(signature_mode="hash")
    manager = DeferredManager(trace_recorder=recorder)
    place = Map(lambda grid: {**grid, (1, 1): "o"})
    sid = manager.run(Deferred.of({(0, 0): "x"}, place))
    assert manager.resume(sid)
    assert recorder.records[0].state_after is not None
    assert recorder.records[0].state_after.hash is not None


class _ListTraceSink:
    def __init__(self) -> None:
        self.emitted: list[object] = []
        self.closed = False

    def emit(self, record: object) -> None:
        self.emitted.append(record)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


def test_manager_tracing_memory_stays_bounded() -> None:
    # A long traced run forwards every record to the sink but keeps only a bounded tape.
    recorder = ResumeTraceRecorder(max_records=10)
    sink = _ListTraceSink()
    manager = DeferredManager(trace_recorder=recorder, trace_sink=sink)
    manager.run(Deferred(0, [Map(lambda v: v + 1)] * 1000))
    assert manager.consume_all() == [(0, 1000)]
    assert len(sink.emitted) == 1000
    assert len(recorder.records) == 10


def test_manager_close_releases_file_log_sink(tmp_path: Path) -> None:
    # close() releases the jsonl log file along with the trace sink.
    log_sink = JsonlLogSink(tmp_path / "log.jsonl")
    trace_sink = _ListTraceSink()
    manager = DeferredManager(log_sink=log_sink, trace_recorder=ResumeTraceRecorder(), trace_sink=trace_sink)
    manager.consume(manager.run(Deferred.of(1, Map(lambda v: v + 1))))
    manager.close()
    assert trace_sink.closed
    assert log_sink._file.closed
    assert len((tmp_path / "log.jsonl").read_text(encoding="utf-8").splitlines()) == 2
    manager.close()
