"""Archivist - selective backup archival.

Copies the configuration files of a program (filtered by filename globs)
together with its profile folder into a timestamped archive and rotates old
archives out of the way.
"""

__version__ = "0.1.0"

from . import exceptions, logging

__all__ = ["exceptions", "logging"]
