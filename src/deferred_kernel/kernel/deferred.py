"""Deferred-sequence container.

A ``Deferred`` holds the current state and the steps not yet executed. Each
``resume()`` runs exactly one unit of logic and returns a new instance; the
previous instance is left untouched and remains a valid snapshot.

A step may hand back a whole ``Deferred`` (wrapped in ``Nested``) instead of a
plain state. Its pending steps are spliced in front of the remaining queue and
picked up by the same loop, so delegation depth never turns into Python call
depth::

    def double_then_triple(v):
        return Deferred.of(v, Map(lambda s: s * 2), Map(lambda s: s * 3))

    d = Deferred.of(1, Map(lambda s: s + 1), Call(double_then_triple), Map(lambda s: s + 2))
    d = d.resume()  # 2
    d = d.resume()  # 4  (splice + first nested step)
    d = d.resume()  # 12
    d = d.resume()  # 14, terminal
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from deferred_kernel.kernel.context import Nested, State, StepContext
from deferred_kernel.kernel.step import Step

S = TypeVar("S")


class ExhaustedError(RuntimeError):
    # Raised by resume() on a sequence with no pending steps.
    pass


class StepContractError(TypeError):
    # Raised when a step returns something other than State or Nested.
    pass


@dataclass(frozen=True, slots=True)
class Deferred(Generic[S]):
    state: S
    pending: tuple[Step[S], ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable of steps but store an immutable snapshot.
        if not isinstance(self.pending, tuple):
            object.__setattr__(self, "pending", tuple(self.pending))

    @classmethod
    def of(cls, initial_state: S, *steps: Step[S]) -> Deferred[S]:
        return cls(initial_state, steps)

    @property
    def can_resume(self) -> bool:
        return bool(self.pending)

    def resume(self) -> Deferred[S]:
        if not self.pending:
            raise ExhaustedError("Deferred sequence has no pending steps")
        queue: deque[Step[S]] = deque(self.pending)
        new_state = _advance(self.state, queue)
        return Deferred(new_state, tuple(queue))

    def consume(self) -> S:
        """Run every pending step and return the final state.

        Produces exactly the state that repeated ``resume()`` calls would reach,
        but shares one queue across ticks instead of rebuilding a tuple per step.
        """
        queue: deque[Step[S]] = deque(self.pending)
        current = self.state
        while queue:
            current = _advance(current, queue)
        return current

    def nested(self) -> Nested[S]:
        # Delegation outcome: return this from a step to splice this sequence in.
        return Nested(self)

    def __iter__(self) -> Iterator[S]:
        # Yields the state after every resume, initial state excluded.
        current: Deferred[S] = self
        while current.can_resume:
            current = current.resume()
            yield current.state


def _advance(current: Any, queue: deque[Step[Any]]) -> Any:
    # One tick: run front steps until one yields a plain State or the queue runs dry.
    # Nested outcomes are flattened into the queue here; nothing recurses.
    outcome = _invoke(queue.popleft(), current)
    while isinstance(outcome, Nested):
        inner = outcome.sequence
        current = inner.state
        queue.extendleft(reversed(inner.pending))
        if not queue:
            return current
        outcome = _invoke(queue.popleft(), current)
    return outcome.value


def _invoke(step: Step[Any], current: Any) -> State[Any] | Nested[Any]:
    outcome = step(StepContext(current))
    if isinstance(outcome, (State, Nested)):
        if isinstance(outcome, Nested) and not isinstance(outcome.sequence, Deferred):
            raise StepContractError(
                f"Nested outcome must wrap a Deferred, got {type(outcome.sequence).__name__}"
            )
        return outcome
    raise StepContractError(f"Step must return State or Nested, got {type(outcome).__name__}")
