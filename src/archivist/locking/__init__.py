"""Lock management for backup destinations."""

from .lock_manager import LOCK_FILENAME, LockAlreadyTakenError, LockManager

__all__ = ["LOCK_FILENAME", "LockAlreadyTakenError", "LockManager"]
