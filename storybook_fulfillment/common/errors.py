"""
Error taxonomy shared by the fulfillment pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass


class FulfillmentError(RuntimeError):
    """
    Base class for failures that abort a fulfillment run.

    ``kind`` tells the caller how to react: transient failures are retried by
    re-invoking the dispatcher, content and assembly failures need a human.
    """

    kind = "internal"


class TransientError(FulfillmentError):
    kind = "transient"


class StorageError(TransientError):
    pass


class PrintProviderError(TransientError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ContentError(FulfillmentError):
    kind = "content"


class MissingAssetError(ContentError):
    def __init__(self, message: str, *, page_number: int | None = None) -> None:
        super().__init__(message)
        self.page_number = page_number


class AssemblyError(FulfillmentError):
    kind = "assembly"


class RenderError(AssemblyError):
    pass


class InvalidTransitionError(ValueError):
    def __init__(self, current: str, target: str, *, order_id: str | None = None) -> None:
        super().__init__(f"Illegal order transition: {current} -> {target}")
        self.current = current
        self.target = target
        self.order_id = order_id


class OrderNotFoundError(LookupError):
    pass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    status_code: int

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)


class MalformedPayloadError(ApiError):
    def __init__(self, message: str = "Malformed payload") -> None:
        super().__init__(code="MALFORMED_PAYLOAD", message=message, status_code=400)


class SignatureError(ApiError):
    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(code="INVALID_SIGNATURE", message=message, status_code=401)


class UnknownJobError(ApiError):
    def __init__(self, message: str = "Unknown provider job") -> None:
        super().__init__(code="UNKNOWN_JOB", message=message, status_code=404)


class PersistenceError(ApiError):
    def __init__(self, message: str = "Failed to persist event") -> None:
        super().__init__(code="PERSISTENCE_FAILED", message=message, status_code=500)


__all__ = [
    "ApiError",
    "AssemblyError",
    "ContentError",
    "FulfillmentError",
    "InvalidTransitionError",
    "MalformedPayloadError",
    "MissingAssetError",
    "OrderNotFoundError",
    "PersistenceError",
    "PrintProviderError",
    "RenderError",
    "SignatureError",
    "StorageError",
    "TransientError",
    "UnknownJobError",
]
