from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from deferred_kernel.adapters.trace_sinks import JsonlTraceSink, StdoutTraceSink
from deferred_kernel.config.models import AppConfig, TracingConfig
from deferred_kernel.kernel.deferred import Deferred
from deferred_kernel.kernel.manager import CompletionSink, DeferredManager
from deferred_kernel.kernel.plan_builder import Plan, PlanBuilder
from deferred_kernel.kernel.step_registry import StepRegistry
from deferred_kernel.kernel.trace import ResumeTraceRecorder
from deferred_kernel.observability.adapters.logging import build_log_sink
from deferred_kernel.ports.trace_sink import TraceSink


@dataclass(frozen=True, slots=True)
class DeferredRuntime:
    # DeferredRuntime bundles the manager with the plans it can start.
    manager: DeferredManager
    plans: dict[str, Plan]
    entry: str | None = None

    def sequence(self, plan_name: str, initial_state: Any) -> Deferred[Any]:
        # Unmanaged sequence for callers that pump it themselves.
        return self.plans[plan_name].start(initial_state)

    def start(self, initial_state: Any, plan_name: str | None = None) -> int:
        name = plan_name if plan_name is not None else self.entry
        if name is None:
            raise ValueError("No plan name given and config declares no entry plan")
        return self.manager.run(self.sequence(name, initial_state))

    def close(self) -> None:
        self.manager.close()


def build_runtime(
    *,
    config: AppConfig,
    registry: StepRegistry,
    wiring: dict[str, object] | None = None,
    completion_sink: CompletionSink | None = None,
) -> DeferredRuntime:
    # Composition root wires registry, builder, manager, and observability per config.
    plans = PlanBuilder(registry).build(plans=config.plan_entries(), wiring=wiring or {})
    log_sink = build_log_sink(config.logging.model_dump())
    trace_recorder, trace_sink = _build_tracing(config.tracing)
    manager = DeferredManager(
        completion_sink=completion_sink,
        log_sink=log_sink,
        min_level=config.logging.level,
        trace_recorder=trace_recorder,
        trace_sink=trace_sink,
    )
    return DeferredRuntime(manager=manager, plans=plans, entry=config.entry)


def _build_tracing(tracing: TracingConfig | None) -> tuple[ResumeTraceRecorder | None, TraceSink | None]:
    # Tracing is optional; when enabled, we create recorder + optional sink.
    if tracing is None or not tracing.enabled:
        return None, None

    recorder = ResumeTraceRecorder(
        signature_mode=tracing.signature.mode,
        max_value_len=tracing.signature.max_value_len,
        max_records=tracing.max_records,
    )

    if tracing.sink is None:
        # Without a sink the in-memory tape is the only place records go.
        return recorder, None

    if tracing.sink.kind == "stdout":
        return recorder, StdoutTraceSink()

    jsonl = tracing.sink.jsonl
    assert jsonl is not None  # validated by config model
    return (
        recorder,
        JsonlTraceSink(
            path=Path(jsonl.path),
            write_mode=jsonl.write_mode,
            flush_every_n=jsonl.flush_every_n,
            fsync_every_n=jsonl.fsync_every_n,
        ),
    )
