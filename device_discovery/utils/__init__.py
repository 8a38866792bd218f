"""
Utility functions and helper classes.
"""

from .logger import Logger, LogLevel, logger, set_log_level, get_logger
from .error_handler import (
    ErrorHandler, ToolValidator, ErrorContext, ErrorType, ErrorSeverity,
    DeviceDiscoveryError, InvalidTargetFormat, ConfigurationError,
    ConfigLoadError, ConfigFileNotFound, OutputProtectionError, ProbeError,
    DeviceConnectionError, FieldRetrievalError, UnknownDeviceError,
    ScanCancelledError, UnexpectedProbeError
)
from . import network_utils

__all__ = [
    'Logger',
    'LogLevel',
    'logger',
    'set_log_level',
    'get_logger',
    'ErrorHandler',
    'ToolValidator',
    'ErrorContext',
    'ErrorType',
    'ErrorSeverity',
    'DeviceDiscoveryError',
    'InvalidTargetFormat',
    'ConfigurationError',
    'ConfigLoadError',
    'ConfigFileNotFound',
    'OutputProtectionError',
    'ProbeError',
    'DeviceConnectionError',
    'FieldRetrievalError',
    'UnknownDeviceError',
    'ScanCancelledError',
    'UnexpectedProbeError',
    'network_utils'
]
