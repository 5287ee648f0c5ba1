from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from deferred_kernel.kernel.context import Nested, StepContext
from deferred_kernel.kernel.deferred import Deferred
from deferred_kernel.kernel.step import Named, Step
from deferred_kernel.kernel.step_registry import StepRegistry


class InvalidPlanConfigError(ValueError):
    pass


class StepBuildError(RuntimeError):
    def __init__(self, step_name: str, cause: Exception) -> None:
        super().__init__(f"Failed to build step '{step_name}': {cause}")
        self.step_name = step_name
        self.cause = cause


@dataclass(frozen=True, slots=True)
class Plan:
    # A named, reusable step list; start() binds it to an initial state.
    name: str
    steps: tuple[Step[Any], ...]

    def start(self, initial_state: Any) -> Deferred[Any]:
        return Deferred(initial_state, self.steps)


@dataclass(frozen=True, slots=True)
class PlanCall:
    # Delegates to another plan at resume time; looked up lazily so plans may recurse.
    plan_name: str
    book: Mapping[str, Plan]

    @property
    def label(self) -> str:
        return f"call:{self.plan_name}"

    def __call__(self, ctx: StepContext[Any]) -> Nested[Any]:
        return Nested(self.book[self.plan_name].start(ctx.state))


@dataclass(frozen=True, slots=True)
class PlanBuilder:
    # PlanBuilder assembles every declared plan from config and the step registry.
    registry: StepRegistry

    def build(self, *, plans: Mapping[str, object], wiring: dict[str, object]) -> dict[str, Plan]:
        if not isinstance(plans, Mapping):
            raise InvalidPlanConfigError("plans must be a mapping of plan name to plan")
        book: dict[str, Plan] = {}
        declared = set(plans)
        for plan_name, plan_cfg in plans.items():
            if not isinstance(plan_name, str) or not plan_name:
                raise InvalidPlanConfigError("plan names must be non-empty strings")
            steps_cfg = _plan_steps(plan_name, plan_cfg)
            built: list[Step[Any]] = []
            for idx, step_cfg in enumerate(steps_cfg):
                built.append(self._build_step(plan_name, idx, step_cfg, declared, book, wiring))
            book[plan_name] = Plan(name=plan_name, steps=tuple(built))
        return book

    def _build_step(
        self,
        plan_name: str,
        idx: int,
        step_cfg: object,
        declared: set[str],
        book: dict[str, Plan],
        wiring: dict[str, object],
    ) -> Step[Any]:
        where = f"plans.{plan_name}.steps[{idx}]"
        if not isinstance(step_cfg, Mapping):
            raise InvalidPlanConfigError(f"{where} must be a mapping")
        if "call" in step_cfg:
            if "name" in step_cfg or "config" in step_cfg:
                raise InvalidPlanConfigError(f"{where} must declare either call or name, not both")
            target = step_cfg["call"]
            if not isinstance(target, str) or target not in declared:
                raise InvalidPlanConfigError(f"{where}.call references unknown plan: {target!r}")
            # The book is filled as plans are built; lookups happen at resume time.
            return PlanCall(plan_name=target, book=book)

        name = step_cfg.get("name")
        if not isinstance(name, str):
            raise InvalidPlanConfigError(f"{where}.name must be a string")
        factory = self.registry.get(name)

        config = step_cfg.get("config", {})
        if not isinstance(config, dict):
            raise InvalidPlanConfigError(f"{where}.config must be a mapping")

        try:
            step = factory(config, wiring)
        except Exception as exc:  # noqa: BLE001 - wrap with explicit error
            raise StepBuildError(name, exc) from exc
        return Named(label=name, step=step)


def _plan_steps(plan_name: str, plan_cfg: object) -> list[object]:
    if not isinstance(plan_cfg, Mapping):
        raise InvalidPlanConfigError(f"plans.{plan_name} must be a mapping")
    steps = plan_cfg.get("steps", [])
    if not isinstance(steps, list):
        raise InvalidPlanConfigError(f"plans.{plan_name}.steps must be a list")
    return steps
