"""Exception hierarchy for the hibernation and wake flows."""


class SpinDownError(Exception):
    """Base exception for spin-down errors."""


class ConfigurationError(SpinDownError):
    """Raised when required configuration is missing or invalid."""


class ComputeScalingError(SpinDownError):
    """Raised when the backend service cannot be described or scaled."""


class RoutingError(SpinDownError):
    """Raised when traffic cannot be routed to the expected target."""


class BackendNotReadyError(SpinDownError):
    """Raised when the backend does not become ready within its budget."""


class ReplayBudgetExhaustedError(SpinDownError):
    """Raised when every replay attempt ended in a retryable failure."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class StepFailedError(SpinDownError):
    """Raised when a required orchestration step fails."""

    def __init__(self, step_name: str, cause: BaseException):
        super().__init__(f"Step '{step_name}' failed: {cause}")
        self.step_name = step_name
        self.cause = cause
