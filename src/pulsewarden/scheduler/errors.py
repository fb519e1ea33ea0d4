"""Exceptions raised by the heartbeat scheduler."""


class HeartbeatError(Exception):
    """Base exception for heartbeat errors."""

    pass


class HeartbeatConfigError(HeartbeatError, ValueError):
    """Raised when the heartbeat configuration is invalid."""

    pass


class TaskNotFoundError(HeartbeatError):
    """Raised when a task name does not match any registered check."""

    def __init__(self, name: str):
        super().__init__(f'Task "{name}" not found')
        self.name = name


class WebhookDeliveryError(HeartbeatError):
    """Raised when a webhook attempt fails (network error or non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
