from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from deferred_kernel.kernel.deferred import Deferred

S = TypeVar("S")


@dataclass(frozen=True, slots=True)
class StepContext(Generic[S]):
    # Read-only view of the current state handed to every step.
    state: S

    def keep(self) -> State[S]:
        # Pass-through outcome: the step advances the sequence without changing state.
        return State(self.state)


@dataclass(frozen=True, slots=True)
class State(Generic[S]):
    # Outcome variant carrying a plain new state value.
    value: S


@dataclass(frozen=True, slots=True)
class Nested(Generic[S]):
    # Outcome variant carrying a whole sequence whose steps run before the rest of the queue.
    sequence: Deferred[S]


Outcome = State[S] | Nested[S]


def state(value: S) -> State[S]:
    return State(value)


def nested(sequence: Deferred[S]) -> Nested[S]:
    return Nested(sequence)
