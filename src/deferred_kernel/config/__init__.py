from .loader import ConfigError, load_config, load_yaml_config, parse_config
from .models import AppConfig, LoggingConfig, PlanDecl, StepDecl, TracingConfig

__all__ = [
    "AppConfig",
    "ConfigError",
    "LoggingConfig",
    "PlanDecl",
    "StepDecl",
    "TracingConfig",
    "load_config",
    "load_yaml_config",
    "parse_config",
]
