# MaxVue Utils Module - logging, error handling, timing and monitoring.

from maxvue.utils.logging_config import setup_logging, get_logger
from maxvue.utils.error_handling import with_fallback, with_timeout
from maxvue.utils.performance import timed, get_performance_stats, reset_performance_stats, log_slow_operations
from maxvue.utils.monitoring import ProcessingMonitor, ProcessingLog, Alert, AlertSeverity
from maxvue.utils.exceptions import (
    MaxVueError,
    AnalysisTimeoutError,
    GPUInitError,
    ShaderCompileError,
    GPURenderError,
    SourceUnreadableError,
    InvalidSourceError,
    InvalidSettingsError,
)

__all__ = [
    'setup_logging',
    'get_logger',
    'with_fallback',
    'with_timeout',
    'timed',
    'get_performance_stats',
    'reset_performance_stats',
    'log_slow_operations',
    'ProcessingMonitor',
    'ProcessingLog',
    'Alert',
    'AlertSeverity',
    'MaxVueError',
    'AnalysisTimeoutError',
    'GPUInitError',
    'ShaderCompileError',
    'GPURenderError',
    'SourceUnreadableError',
    'InvalidSourceError',
    'InvalidSettingsError',
]
