from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Config models map YAML sections to typed structures; unknown keys are rejected everywhere.


class StepDecl(BaseModel):
    # One plan entry: either a registered step (name + config) or a delegation to another plan (call).
    model_config = ConfigDict(extra="forbid")
    name: str | None = None
    call: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _name_or_call(self) -> StepDecl:
        if (self.name is None) == (self.call is None):
            raise ValueError("step entry must declare exactly one of 'name' or 'call'")
        if self.call is not None and self.config:
            raise ValueError("'config' is only allowed on named steps")
        return self

    def as_entry(self) -> dict[str, object]:
        # Plain mapping understood by PlanBuilder.
        if self.call is not None:
            return {"call": self.call}
        return {"name": self.name, "config": dict(self.config)}


class PlanDecl(BaseModel):
    # A plan is an ordered step list; empty plans are valid and start terminal.
    model_config = ConfigDict(extra="forbid")
    steps: list[StepDecl] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["none", "stdout", "jsonl", "memory"] = "none"
    path: str | None = None
    level: Literal["debug", "info", "warning", "error"] = "info"

    @model_validator(mode="after")
    def _require_path(self) -> LoggingConfig:
        if self.kind == "jsonl" and not self.path:
            raise ValueError("logging.path is required when kind is 'jsonl'")
        return self


class TraceSignatureConfig(BaseModel):
    # Signature config for ResumeTraceRecorder.
    model_config = ConfigDict(extra="forbid")
    mode: Literal["type_only", "repr", "hash"] = "type_only"
    max_value_len: int = 256


class TraceSinkJsonlConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    path: str
    write_mode: Literal["line", "batch"] = "line"
    flush_every_n: int = 1
    fsync_every_n: int | None = None


class TraceSinkConfig(BaseModel):
    # Trace sink selector: only one sink is active at a time.
    model_config = ConfigDict(extra="forbid")
    kind: Literal["jsonl", "stdout"]
    jsonl: TraceSinkJsonlConfig | None = None

    @model_validator(mode="after")
    def _require_jsonl(self) -> TraceSinkConfig:
        # For jsonl kind, a jsonl section is required to avoid silent defaults.
        if self.kind == "jsonl" and self.jsonl is None:
            raise ValueError("tracing.sink.jsonl is required when kind is 'jsonl'")
        return self


class TracingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = False
    # Size of the recorder's in-memory tape; 0 keeps no records in memory.
    max_records: int = Field(default=1000, ge=0)
    signature: TraceSignatureConfig = Field(default_factory=TraceSignatureConfig)
    sink: TraceSinkConfig | None = None


class AppConfig(BaseModel):
    # AppConfig is the top-level typed view of configuration.
    model_config = ConfigDict(extra="forbid")
    version: int
    entry: str | None = None
    plans: dict[str, PlanDecl] = Field(default_factory=dict)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    tracing: TracingConfig | None = None

    @model_validator(mode="after")
    def _check_references(self) -> AppConfig:
        if self.entry is not None and self.entry not in self.plans:
            raise ValueError(f"entry references unknown plan: {self.entry!r}")
        for plan_name, plan in self.plans.items():
            for idx, step in enumerate(plan.steps):
                if step.call is not None and step.call not in self.plans:
                    raise ValueError(f"plans.{plan_name}.steps[{idx}].call references unknown plan: {step.call!r}")
        return self

    def plan_entries(self) -> dict[str, dict[str, object]]:
        return {name: {"steps": [step.as_entry() for step in plan.steps]} for name, plan in self.plans.items()}
