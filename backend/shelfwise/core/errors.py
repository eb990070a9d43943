"""Shelfwise — Engine error taxonomy.

Every service raises one of these; the API layer maps them to HTTP statuses.
"""


class EngineError(Exception):
    """Base exception for all engine errors."""

    code = "ENGINE_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str | None = None, code: str | None = None, details: dict | None = None):
        self.message = message or "An error occurred in the storage engine"
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict:
        """Convert the exception to the API error shape."""
        error = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(EngineError):
    """Malformed input. Nothing was written; safe to retry with corrected input."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(EngineError):
    """A referenced warehouse, zone, rack, shelf, PO, GRN or party does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id=None, message: str | None = None):
        super().__init__(
            message or f"{entity} not found",
            details={"entity": entity, "id": str(entity_id)} if entity_id is not None else {"entity": entity},
        )


class StateConflictError(EngineError):
    """Operation attempted against an aggregate in the wrong status. Re-fetch before acting again."""

    code = "STATE_CONFLICT"
    status_code = 409


class TransactionAbortError(EngineError):
    """Concurrent write conflict. No partial effect occurred; retry once after re-reading."""

    code = "TRANSACTION_ABORTED"
    status_code = 409
    retryable = True
