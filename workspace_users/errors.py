from __future__ import annotations


class WorkspaceUsersError(Exception):
    """Base class for errors raised by this package (store errors are not wrapped)."""


class ConfigError(WorkspaceUsersError, RuntimeError):
    """A required configuration value (e.g. the table name) is missing."""


class AccessPathError(WorkspaceUsersError, ValueError):
    """The lookup cannot be served by any declared key schema."""


class RecordValidationError(WorkspaceUsersError, ValueError):
    """A user is missing an attribute that the table or its indexes require."""
