from .context import Nested, Outcome, State, StepContext, nested, state
from .step import Call, Map, Named, Step, Tap, step_name
from .deferred import Deferred, ExhaustedError, StepContractError
from .trace import ErrorInfo, ResumeRecord, ResumeTraceRecorder, StateSignature
from .manager import CompletionSink, DeferredManager
from .step_registry import StepRegistry, UnknownStepError
from .plan_builder import InvalidPlanConfigError, Plan, PlanBuilder, PlanCall, StepBuildError
from .composition_root import DeferredRuntime, build_runtime

__all__ = [
    "StepContext",
    "State",
    "Nested",
    "Outcome",
    "state",
    "nested",
    "Step",
    "Map",
    "Tap",
    "Call",
    "Named",
    "step_name",
    "Deferred",
    "ExhaustedError",
    "StepContractError",
    "ErrorInfo",
    "ResumeRecord",
    "ResumeTraceRecorder",
    "StateSignature",
    "CompletionSink",
    "DeferredManager",
    "StepRegistry",
    "UnknownStepError",
    "InvalidPlanConfigError",
    "Plan",
    "PlanBuilder",
    "PlanCall",
    "StepBuildError",
    "DeferredRuntime",
    "build_runtime",
]
