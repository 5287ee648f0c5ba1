from .trace_sinks import JsonlTraceSink, StdoutTraceSink

__all__ = ["JsonlTraceSink", "StdoutTraceSink"]
