"""Common exceptions used across the Archivist library."""


class LockAlreadyTakenError(Exception):
    """Exception raised when a lock is already taken by another process."""


class InvalidEnvVariableError(Exception):
    """Exception raised when an environment override cannot be parsed."""
