from .kernel import (
    Call,
    Deferred,
    DeferredManager,
    ExhaustedError,
    Map,
    Nested,
    State,
    StepContext,
    StepContractError,
    Tap,
    nested,
    state,
)

# Package root re-exports the sequence API; wiring and observability live in subpackages.
__all__ = [
    "Call",
    "Deferred",
    "DeferredManager",
    "ExhaustedError",
    "Map",
    "Nested",
    "State",
    "StepContext",
    "StepContractError",
    "Tap",
    "nested",
    "state",
]
