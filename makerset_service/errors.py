"""
errors.py — Domain Errors for Cart and Checkout

Every error raised to callers of the checkout flow derives from MakerSetError,
so the HTTP layer can translate them into user-visible messages. None of them
is fatal: the user can always retry the action that raised it.
"""

from typing import Dict, List, Optional


class MakerSetError(Exception):
    """Base error carrying a user-visible message and an optional cause."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class StockValidationFailedError(MakerSetError):
    """The stock check itself failed (network or server error)."""

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__("Failed to validate stock availability", cause)


class StockIssueError(MakerSetError):
    """The stock check succeeded but at least one line cannot be fulfilled."""

    def __init__(self, message: str, results: List):
        super().__init__(message)
        self.results = results


class OrderSubmissionError(MakerSetError):
    """The order-creation call failed."""


class CustomerInfoError(MakerSetError):
    """Required checkout form fields are missing or malformed."""

    def __init__(self, field_errors: Dict[str, str]):
        super().__init__("Please fill in all required fields")
        self.field_errors = field_errors


class CheckoutInProgressError(MakerSetError):
    """A checkout is already running for this cart."""

    def __init__(self):
        super().__init__("A checkout is already in progress for this cart")
