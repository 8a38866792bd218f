"""
Error handling for the Device Discovery Module.

This module defines the exception hierarchy used across the pipeline,
centralized error reporting with per-type statistics and troubleshooting
suggestions, and validation of the external tools the scanners rely on.

Startup errors (configuration, invalid targets) abort the run. Per-host
errors derive from ProbeError and are captured by the job scheduler as the
outcome of that host only.
"""

import shutil
import subprocess
from typing import Optional, Any, Dict, List, Tuple
from enum import Enum
from dataclasses import dataclass

from .logger import Logger, get_logger


class ErrorType(Enum):
    """Enumeration for different types of errors."""
    PERMISSION_ERROR = "permission_error"
    TOOL_MISSING_ERROR = "tool_missing_error"
    CONFIGURATION_ERROR = "configuration_error"
    VALIDATION_ERROR = "validation_error"
    PROBE_ERROR = "probe_error"
    FILE_ERROR = "file_error"


class ErrorSeverity(Enum):
    """Enumeration for error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """
    Context information for error handling.

    Attributes:
        error_type: Type of error that occurred
        severity: Severity level of the error
        operation: Operation that was being performed when error occurred
        component: Component/module where error occurred
        additional_info: Additional context information
    """
    error_type: ErrorType
    severity: ErrorSeverity
    operation: str
    component: str
    additional_info: Dict[str, Any] = None

    def __post_init__(self):
        if self.additional_info is None:
            self.additional_info = {}


class DeviceDiscoveryError(Exception):
    """Base exception class for Device Discovery Module."""

    def __init__(self, message: str, error_context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.error_context = error_context


class InvalidTargetFormat(DeviceDiscoveryError):
    """Malformed CIDR, address or target list."""
    pass


class ConfigurationError(DeviceDiscoveryError):
    """Exception for configuration-related errors."""
    pass


class ConfigLoadError(ConfigurationError):
    """A configuration document could not be parsed or failed validation."""
    pass


class ConfigFileNotFound(ConfigurationError):
    """A required configuration or input file does not exist."""

    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path


class OutputProtectionError(DeviceDiscoveryError):
    """Encryption or decryption of the output document failed."""
    pass


class ProbeError(DeviceDiscoveryError):
    """
    Base class for failures isolated to a single host.

    Attributes:
        host: Address of the host the failure belongs to
    """

    kind = "ProbeError"

    def __init__(self, host: str, message: Optional[str] = None):
        super().__init__(message or f"{self.kind} for {host}")
        self.host = host


class DeviceConnectionError(ProbeError):
    """No vendor/credential pair produced a live session."""

    kind = "ConnectionError"

    def __init__(self, host: str, attempts: int = 0):
        super().__init__(
            host, f"No credential accepted by {host} after {attempts} attempts"
        )
        self.attempts = attempts


class FieldRetrievalError(ProbeError):
    """A required attribute had no answering query key."""

    kind = "FieldRetrievalError"

    def __init__(self, host: str, field: str):
        super().__init__(host, f"Could not retrieve field '{field}' from {host}")
        self.field = field


class UnknownDeviceError(ProbeError):
    """The extracted model matches no known device prefix."""

    kind = "UnknownDeviceError"

    def __init__(self, host: Optional[str], model: str):
        super().__init__(host or "", f"Unknown device model '{model}'" + (f" on {host}" if host else ""))
        self.model = model


class ScanCancelledError(ProbeError):
    """The job was never started because the scan was cancelled."""

    kind = "Cancelled"

    def __init__(self, host: str):
        super().__init__(host, f"Scan cancelled before {host} was probed")


class UnexpectedProbeError(ProbeError):
    """Wraps an unexpected exception raised inside a probe job."""

    kind = "UnexpectedError"

    def __init__(self, host: str, cause: BaseException):
        super().__init__(host, f"Unexpected error on {host}: {type(cause).__name__}: {cause}")
        self.cause = cause


class ErrorHandler:
    """
    Centralized error reporting.

    Logs errors at a level matching their severity, keeps per-type counters
    for the run summary and prints troubleshooting suggestions for the
    error categories an operator can act on.
    """

    def __init__(self, logger: Optional[Logger] = None):
        """
        Initialize the ErrorHandler.

        Args:
            logger: Logger instance for error reporting
        """
        self.logger = logger or get_logger(__name__)
        self.error_statistics: Dict[ErrorType, int] = {
            error_type: 0 for error_type in ErrorType
        }

    def handle_error(self, error: Exception, context: ErrorContext) -> None:
        """
        Record and report an error.

        Args:
            error: The exception that occurred
            context: Error context information
        """
        self.error_statistics[context.error_type] += 1
        self._log_error(error, context)

        suggestions = {
            ErrorType.PERMISSION_ERROR: self._suggest_permission_solutions,
            ErrorType.TOOL_MISSING_ERROR: self._suggest_tool_installation,
            ErrorType.CONFIGURATION_ERROR: self._suggest_configuration_fixes,
            ErrorType.VALIDATION_ERROR: self._suggest_validation_fixes,
            ErrorType.FILE_ERROR: self._suggest_file_solutions,
        }
        suggest = suggestions.get(context.error_type)
        if suggest and context.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            suggest(context)

    def record_probe_error(self, error: ProbeError) -> None:
        """Count a per-host failure without printing suggestions."""
        self.handle_error(
            error,
            ErrorContext(
                error_type=ErrorType.PROBE_ERROR,
                severity=ErrorSeverity.LOW,
                operation="probe",
                component=type(error).__name__,
                additional_info={"host": error.host},
            ),
        )

    def total_errors(self) -> int:
        return sum(self.error_statistics.values())

    def _log_error(self, error: Exception, context: ErrorContext) -> None:
        """
        Log error information with appropriate detail level.

        Args:
            error: The exception that occurred
            context: Error context information
        """
        error_msg = f"Error in {context.component}.{context.operation}: {str(error)}"

        if context.severity == ErrorSeverity.CRITICAL:
            self.logger.error(error_msg, exception=error)
        elif context.severity == ErrorSeverity.HIGH:
            self.logger.error(error_msg)
        elif context.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error_msg)
        else:
            self.logger.debug(error_msg)

    def _suggest_permission_solutions(self, context: ErrorContext) -> None:
        self.logger.info("Permission error solutions:")
        self.logger.info("  • Check that the ping binary may send ICMP as this user")
        self.logger.info("  • Check file/directory permissions for config and output paths")

    def _suggest_tool_installation(self, context: ErrorContext) -> None:
        tool_name = context.additional_info.get("tool_name", "unknown")
        suggestions = {
            "ping": [
                "Ubuntu/Debian: sudo apt-get install iputils-ping",
                "CentOS/RHEL: sudo yum install iputils",
                "Alpine: apk add iputils",
            ],
        }

        if tool_name in suggestions:
            self.logger.info(f"Installation suggestions for {tool_name}:")
            for suggestion in suggestions[tool_name]:
                self.logger.info(f"  • {suggestion}")
        else:
            self.logger.info(f"Please install {tool_name} using your system's package manager")

    def _suggest_configuration_fixes(self, context: ErrorContext) -> None:
        self.logger.info("Configuration error solutions:")
        self.logger.info("  • Check YAML syntax and indentation")
        self.logger.info("  • Every vendor under 'credentials' needs a matching 'oids' profile")
        self.logger.info("  • Known-device rows must be PREFIX;TYPE")

    def _suggest_validation_fixes(self, context: ErrorContext) -> None:
        self.logger.info("Validation error solutions:")
        self.logger.info("  • Use CIDR notation such as 192.168.1.0/24")
        self.logger.info("  • Prefix length must be between 0 and 32")

    def _suggest_file_solutions(self, context: ErrorContext) -> None:
        file_path = context.additional_info.get("file_path", "unknown")
        self.logger.info(f"File system error solutions for {file_path}:")
        self.logger.info("  • Check that the path exists and is readable")
        self.logger.info("  • Ensure parent directories of output files exist")


class ToolValidator:
    """
    Validator for external tool availability.

    The liveness probe shells out to the system ping; this class checks the
    binary is present and runnable before a scan starts.
    """

    def __init__(self, error_handler: ErrorHandler, ping_command: List[str]):
        """
        Initialize the ToolValidator.

        Args:
            error_handler: ErrorHandler instance for error management
            ping_command: Self-test command for the ping binary, built with
                the same platform flags the liveness probe uses
        """
        self.error_handler = error_handler
        self.logger = error_handler.logger
        self.tool_validations = {
            "ping": {
                "check_command": list(ping_command),
            },
        }

    def validate_all_tools(self) -> Tuple[bool, List[str]]:
        """
        Validate all required external tools.

        Returns:
            Tuple of (all_valid, missing_tools)
        """
        missing_tools = [
            tool_name for tool_name in self.tool_validations
            if not self.validate_tool(tool_name)
        ]
        return not missing_tools, missing_tools

    def validate_tool(self, tool_name: str) -> bool:
        """
        Validate a specific external tool.

        Args:
            tool_name: Name of the tool to validate

        Returns:
            bool: True if tool is valid and available, False otherwise
        """
        if tool_name not in self.tool_validations:
            self.logger.warning(f"Unknown tool: {tool_name}")
            return False

        tool_path = shutil.which(tool_name)
        if not tool_path:
            context = ErrorContext(
                error_type=ErrorType.TOOL_MISSING_ERROR,
                severity=ErrorSeverity.HIGH,
                operation="tool_availability_check",
                component="ToolValidator",
                additional_info={"tool_name": tool_name},
            )
            self.error_handler.handle_error(
                DeviceDiscoveryError(f"Tool {tool_name} not found in PATH"), context
            )
            return False

        self.logger.debug(f"Found {tool_name} at: {tool_path}")
        return self._check_tool_runs(tool_name)

    def _check_tool_runs(self, tool_name: str) -> bool:
        try:
            result = subprocess.run(
                self.tool_validations[tool_name]["check_command"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            self.logger.warning(f"{tool_name} check failed: {e}")
            return False

        if result.returncode != 0:
            error_output = result.stderr.lower()
            if any(keyword in error_output for keyword in
                   ["permission", "privilege", "operation not permitted"]):
                context = ErrorContext(
                    error_type=ErrorType.PERMISSION_ERROR,
                    severity=ErrorSeverity.HIGH,
                    operation="tool_permission_check",
                    component="ToolValidator",
                    additional_info={"tool_name": tool_name},
                )
                self.error_handler.handle_error(
                    DeviceDiscoveryError(f"Tool {tool_name} requires elevated permissions"),
                    context,
                )
                return False
            self.logger.warning(f"{tool_name} self-test returned code {result.returncode}")
            return False

        self.logger.debug(f"Tool {tool_name} validation passed")
        return True
