from .trace_sink import TraceSink

__all__ = ["TraceSink"]
