from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from deferred_kernel.kernel.step import Step


class UnknownStepError(KeyError):
    pass


# Step factories accept per-step config + shared wiring and return a Step instance.
# State types vary per plan, so the registry sits at an Any boundary.
StepFactory = Callable[[dict[str, object], dict[str, object]], Step[Any]]


@dataclass
class StepRegistry:
    # Registry maps step names to factories.
    _factories: dict[str, StepFactory] = field(default_factory=dict)

    def register(self, name: str, factory: StepFactory) -> None:
        # Registration is explicit; later registration overrides earlier ones.
        self._factories[name] = factory

    def get(self, name: str) -> StepFactory:
        if name not in self._factories:
            raise UnknownStepError(name)
        return self._factories[name]

    def names(self) -> list[str]:
        return sorted(self._factories)
