from .logging import LOG_LEVELS, LogMessage, LogSink, level_enabled

__all__ = ["LOG_LEVELS", "LogMessage", "LogSink", "level_enabled"]
