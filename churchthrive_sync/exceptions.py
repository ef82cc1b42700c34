"""
Custom exceptions for the offline sync core.

Local store, remote service and sync components raise these
exceptions so callers can handle failures consistently.
"""


class SyncStorageError(Exception):
    """Base exception for all churchthrive_sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StorageFailure(SyncStorageError):
    """Raised when a local storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage failure during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class RecordNotFoundError(StorageFailure):
    """Raised when a record is not present in the local store."""

    def __init__(self, entity_type: str, record_id: str):
        SyncStorageError.__init__(
            self,
            f"Record not found: {entity_type}/{record_id}",
            {"operation": "find", "entity_type": entity_type, "record_id": record_id},
        )
        self.operation = "find"
        self.path = None
        self.cause = None
        self.entity_type = entity_type
        self.record_id = record_id


class SchemaMigrationError(SyncStorageError):
    """Raised when the local schema cannot be created or migrated."""

    def __init__(
        self,
        reason: str,
        from_version: int | None = None,
        to_version: int | None = None,
    ):
        details: dict = {"reason": reason}
        if from_version is not None:
            details["from_version"] = from_version
        if to_version is not None:
            details["to_version"] = to_version
        super().__init__(f"Schema migration failed: {reason}", details)
        self.reason = reason
        self.from_version = from_version
        self.to_version = to_version


class RemoteError(SyncStorageError):
    """Raised when a call to the remote backend fails.

    Opaque to the sync manager: any RemoteError leaves the record pending.
    """

    def __init__(self, operation: str, table: str | None = None, cause: Exception | None = None):
        details: dict = {"operation": operation}
        if table:
            details["table"] = table
        if cause:
            details["cause"] = str(cause)
        message = f"Remote {operation} failed"
        if table:
            message += f" on {table}"
        if cause:
            message += f": {cause}"
        super().__init__(message, details)
        self.operation = operation
        self.table = table
        self.cause = cause


class StorageConnectionError(SyncStorageError):
    """Raised when connection to the remote backend fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class AuthenticationError(SyncStorageError):
    """Raised when credentials for a remote service are missing or rejected."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Authentication failed for {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class ValidationFailure(SyncStorageError):
    """Raised when data validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class PermissionDeniedError(SyncStorageError):
    """Role does not grant the requested permission."""

    def __init__(self, role: str, permission: str):
        details = {"role": role, "permission": permission}
        super().__init__(f"Permission denied for role {role}: {permission}", details)
        self.role = role
        self.permission = permission
