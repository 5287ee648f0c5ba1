from .logging import JsonlLogSink, MemoryLogSink, StdoutLogSink, build_log_sink

__all__ = ["StdoutLogSink", "JsonlLogSink", "MemoryLogSink", "build_log_sink"]
