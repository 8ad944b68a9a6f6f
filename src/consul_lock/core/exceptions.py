"""Custom exceptions for consul-lock.

All exception classes carry a short message plus optional details so the
driver can log one readable line before choosing an exit code.
"""


class ConsulLockError(Exception):
    """Base exception for all consul-lock errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(ConsulLockError):
    """Exception raised for configuration-related errors.

    Examples:
        - Malformed CONSUL_HTTP_ADDR
        - Negative lock delay
        - Unparseable long-poll wait duration
    """

    def __init__(self, message: str, field: str | None = None, details: str | None = None):
        self.field = field
        super().__init__(message, details)


class APIError(ConsulLockError):
    """Exception raised for coordination backend failures.

    Covers an unreachable backend, an unexpected HTTP status and a
    response body that cannot be decoded. Never retried.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        operation: str | None = None,
        details: str | None = None,
        original_error: Exception | None = None,
    ):
        self.status_code = status_code
        self.operation = operation
        self.original_error = original_error
        super().__init__(message, details)

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"HTTP {self.status_code}")
        if self.operation:
            parts.append(f"during {self.operation}")
        if self.details:
            parts.append(self.details)
        return " - ".join(parts)


class LockContendedError(ConsulLockError):
    """Raised when the key is held by another session and waiting is disabled.

    Attributes:
        key: Lock key that could not be acquired
        holder_session: Session ID of the current holder, when known
    """

    def __init__(self, key: str, holder_session: str | None = None):
        self.key = key
        self.holder_session = holder_session
        details = f"held by session {holder_session}" if holder_session else None
        super().__init__(f"unable to lock '{key}'", details)


class ProcessStartError(ConsulLockError):
    """Raised when the supervised program cannot be started."""

    def __init__(self, program: str, original_error: Exception | None = None):
        self.program = program
        self.original_error = original_error
        details = str(original_error) if original_error else None
        super().__init__(f"failed to start '{program}'", details)
