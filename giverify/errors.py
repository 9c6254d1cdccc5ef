"""Failure types raised while verifying a product against a portal."""
from __future__ import annotations


class VerificationError(Exception):
    """Base class for every verification failure."""


class NavigationFailure(VerificationError):
    """The portal entry page did not load within its timeout."""


class ClassificationTimeout(VerificationError):
    """Neither a results table nor a rejection heading appeared in time."""


class SessionTeardownFailure(VerificationError):
    """Closing the browser session failed. Logged, never raised to callers."""


class ScrapeFailure(VerificationError):
    """Caller-facing failure with a stable message."""

    MESSAGE = "Failed to verify product"

    def __init__(self, product_id: str | None = None) -> None:
        super().__init__(self.MESSAGE)
        self.product_id = product_id
