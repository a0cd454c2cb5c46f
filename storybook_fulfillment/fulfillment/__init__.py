"""
Order fulfillment: generate, persist and hand off the finished book.
"""

from .dispatcher import (
    FulfillmentDispatcher,
    FulfillmentFailure,
    FulfillmentOutcome,
    FulfillmentResult,
    safe_title,
)

__all__ = [
    "FulfillmentDispatcher",
    "FulfillmentFailure",
    "FulfillmentOutcome",
    "FulfillmentResult",
    "safe_title",
]
