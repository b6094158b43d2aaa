"""Custom exception classes for infinibadger.

Every failure inside a download cycle is raised as one of these types so the
cycle runner can log it and move on to the next tick.
"""

from typing import Optional, Dict, Any


class InfinibadgerError(Exception):
    """Base exception for all infinibadger errors."""

    error_code: str = "ERR000"  # Override in subclasses

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        """
        Initialize infinibadger exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context
            error_code: Optional error code override
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def __str__(self) -> str:
        """Return string representation with error code and details."""
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)


def _cause_details(original_error: Optional[Exception]) -> Dict[str, Any]:
    if original_error is None:
        return {}
    return {
        'original_error': str(original_error),
        'error_type': type(original_error).__name__,
    }


class ConfigValidationError(InfinibadgerError):
    """Raised when configuration validation fails.

    Examples:
        - Missing RDS instance identifier
        - Unparseable download interval
        - Invalid YAML in the config file
    """

    error_code = "CFG001"

    def __init__(self, message: str, config_path: Optional[str] = None, key: Optional[str] = None):
        details = {}
        if config_path:
            details['config_path'] = config_path
        if key:
            details['config_key'] = key
        super().__init__(message, details)


class SourceUnavailableError(InfinibadgerError):
    """Raised when listing log files on the remote source fails.

    Examples:
        - Network failures
        - Expired or invalid credentials
        - API throttling
    """

    error_code = "SRC001"

    def __init__(
        self,
        message: str,
        instance: Optional[str] = None,
        since: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if instance:
            details['instance'] = instance
        if since is not None:
            details['since'] = since
        details.update(_cause_details(original_error))
        super().__init__(message, details)
        self.original_error = original_error


class FetchError(InfinibadgerError):
    """Raised when fetching a portion of a log file fails mid-file."""

    error_code = "SRC002"

    def __init__(
        self,
        message: str,
        log_file: Optional[str] = None,
        marker: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if log_file:
            details['log_file'] = log_file
        if marker:
            details['marker'] = marker
        details.update(_cause_details(original_error))
        super().__init__(message, details)
        self.original_error = original_error


class SinkError(InfinibadgerError):
    """Raised when writing downloaded bytes to the local sink fails.

    Examples:
        - Disk full
        - Permission denied
        - Sink already closed
    """

    error_code = "SNK001"

    def __init__(
        self,
        message: str,
        log_file: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if log_file:
            details['log_file'] = log_file
        details.update(_cause_details(original_error))
        super().__init__(message, details)
        self.original_error = original_error


class AnalysisError(InfinibadgerError):
    """Raised when the report generator cannot be run or exits nonzero."""

    error_code = "ANL001"

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        returncode: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if command:
            details['command'] = command
        if returncode is not None:
            details['returncode'] = returncode
        details.update(_cause_details(original_error))
        super().__init__(message, details)
        self.original_error = original_error


class StateManagementError(InfinibadgerError):
    """Raised when the download state checkpoint cannot be read or written.

    Examples:
        - Cannot write the state file
        - Incoherent state record (negative offsets, wrong types)
    """

    error_code = "STATE001"

    def __init__(
        self,
        message: str,
        state_file: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if state_file:
            details['state_file'] = state_file
        details.update(_cause_details(original_error))
        super().__init__(message, details)
        self.original_error = original_error
