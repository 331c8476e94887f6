"""
Credit system exceptions
Each carries the HTTP status it maps to and a details dict for the response body
"""
from typing import Any, Dict, Optional


class CreditError(Exception):
    """Base exception for the credit ledger"""

    status_code: int = 500
    response_status: str = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_response_dict(self) -> dict:
        return {
            "status": self.response_status,
            "message": self.message,
            "details": self.details,
        }


class UserNotFoundError(CreditError):
    status_code = 404
    response_status = "fail"

    def __init__(self, user_id: str):
        super().__init__("User not found", {"user_id": user_id})


class InvalidAmountError(CreditError):
    status_code = 400
    response_status = "fail"

    def __init__(self, amount: Any):
        super().__init__(
            "Please provide a valid amount (positive integer)",
            {"amount": amount},
        )


class InvalidOperationError(CreditError):
    status_code = 400
    response_status = "fail"

    def __init__(self, operation: str):
        super().__init__(
            f"Operation '{operation}' cannot be used when spending credits",
            {"operation": operation},
        )


class InsufficientCreditsError(CreditError):
    status_code = 400
    response_status = "fail"

    def __init__(self, required: int, available: int, user_id: str = None):
        self.required = required
        self.available = available
        super().__init__(
            f"Not enough credits. Required: {required}, Available: {available}",
            {
                "required_credits": required,
                "available_credits": available,
                "user_id": user_id,
            },
        )


class ThrottledError(CreditError):
    status_code = 429
    response_status = "throttled"

    def __init__(self, retry_after_ms: int):
        self.retry_after_ms = retry_after_ms
        super().__init__(
            "Too many update requests. Please wait before trying again.",
            {"retry_after_ms": retry_after_ms},
        )


class StorageFailureError(CreditError):
    """Datastore unreachable or a write failed. Never retried silently."""

    status_code = 500
    response_status = "error"

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Credit storage failure during {operation}",
            {"operation": operation, "reason": reason},
        )
