"""
HomeCtl - Errors
=================
Exceptions raised by collaborators (remote API, storage, member registry).
Core services catch these at their boundary and turn them into result values.
"""
import json
from typing import Optional


class HomeCtlError(Exception):
    """Base class for all HomeCtl errors."""


class RemoteError(HomeCtlError):
    """The remote device-state API rejected a call or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class StorageError(HomeCtlError):
    """The key-value store could not read or write."""


class UnknownMemberError(HomeCtlError):
    """No member is registered under the given id."""


def error_message(error: object) -> str:
    """Render any exception (or stray value) as a short message."""
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, str):
        return error
    try:
        return json.dumps(error)
    except (TypeError, ValueError):
        return str(error)
