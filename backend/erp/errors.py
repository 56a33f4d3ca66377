# Overview: Typed error hierarchy shared by services and routes.

"""
ERP error taxonomy.

Services raise these; routes let them propagate to the handler registered in
create_app(), which renders {"error": message} with the class status code.

    ErpError
    +-- ValidationError         400  caller data violates a field constraint
    +-- NotFoundError           404  referenced item/BOM/order does not exist
    +-- InvalidOperationError   409  valid request that would break a domain invariant
    |   +-- InvalidTransitionError   status change not in the transition table
    +-- PersistenceError        503  the database rejected or failed the read/write
"""

from __future__ import annotations


class ErpError(Exception):
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ErpError, ValueError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(ErpError, LookupError):
    status_code = 404


class InvalidOperationError(ErpError):
    """409-level business rule conflict (e.g., stock would go negative)."""
    status_code = 409


class InvalidTransitionError(InvalidOperationError):
    def __init__(self, entity: str, from_status: str, to_status: str):
        super().__init__(
            f"Cannot move {entity} from '{from_status}' to '{to_status}'",
            details={"from": from_status, "to": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class PersistenceError(ErpError):
    status_code = 503
