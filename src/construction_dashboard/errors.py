"""Error taxonomy shared by the store, email engine and delivery layer.

- :class:`ResolutionError` - a referenced id does not resolve where the caller
  cannot substitute a placeholder (the recipient's own stakeholder/email).
- :class:`TransportError` - the Microsoft 365 adapter is unreachable or failed.
- :class:`ComposeValidationError` - malformed input to the composed email
  entry point.
- :class:`UnknownCollectionError` - an unknown record collection name.
- :class:`StoreCorruptedError` - a collection file is unreadable when it
  is about to be rewritten.
"""


class DashboardError(Exception):
    """Base class for dashboard errors."""


class ResolutionError(DashboardError):
    """Raised when a required reference cannot be resolved.

    Args:
        entity: Kind of record that failed to resolve (e.g. ``stakeholder``).
        entity_id: The dangling id.
        reason: Optional extra detail.
    """

    def __init__(self, entity: str, entity_id: str, reason: str = "") -> None:
        message = f"Could not resolve {entity} {entity_id!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason


class TransportError(DashboardError):
    """Raised when Microsoft Graph cannot be reached or rejects a request."""


class ComposeValidationError(DashboardError):
    """Raised when a composed email request is missing required selections."""


class UnknownCollectionError(DashboardError):
    """Raised when a record collection name is not recognized.

    Args:
        name: The requested collection name.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid data type: {name}")
        self.name = name


class StoreCorruptedError(DashboardError):
    """Raised when a collection file cannot be parsed before a write.

    Args:
        path: The unreadable file.
        reason: Parser or I/O error detail.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason
