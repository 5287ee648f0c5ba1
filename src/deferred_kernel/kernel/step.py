from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

from deferred_kernel.kernel.context import Nested, State, StepContext

if TYPE_CHECKING:
    from deferred_kernel.kernel.deferred import Deferred

S = TypeVar("S")


class Step(Protocol[S]):
    # Step contract is ctx -> State | Nested; anything else is rejected at resume time.
    def __call__(self, ctx: StepContext[S]) -> State[S] | Nested[S]:
        raise NotImplementedError("Step protocol has no implementation")


@dataclass(frozen=True, slots=True)
class Map(Generic[S]):
    # Map computes the next state from the current one.
    fn: Callable[[S], S]

    def __call__(self, ctx: StepContext[S]) -> State[S]:
        return State(self.fn(ctx.state))


@dataclass(frozen=True, slots=True)
class Tap(Generic[S]):
    # Tap performs a side-effect and keeps the current state.
    fn: Callable[[S], None]

    def __call__(self, ctx: StepContext[S]) -> State[S]:
        self.fn(ctx.state)
        return ctx.keep()


@dataclass(frozen=True, slots=True)
class Call(Generic[S]):
    # Call delegates to another step-sequenced function built from the current state.
    factory: Callable[[S], Deferred[S]]

    def __call__(self, ctx: StepContext[S]) -> Nested[S]:
        return Nested(self.factory(ctx.state))


@dataclass(frozen=True, slots=True)
class Named(Generic[S]):
    # Named attaches a stable label to a step for traces; behaviour is the wrapped step's.
    label: str
    step: Step[S]

    def __call__(self, ctx: StepContext[S]) -> State[S] | Nested[S]:
        return self.step(ctx)


def step_name(step: object) -> str:
    # Readable label for logs and traces; adapters report their wrapped callable.
    label = getattr(step, "label", None)
    if isinstance(label, str):
        return label
    inner = getattr(step, "fn", None) or getattr(step, "factory", None)
    target = inner if inner is not None else step
    name = getattr(target, "__qualname__", None) or getattr(target, "__name__", None)
    if isinstance(name, str):
        return name
    return type(target).__name__
