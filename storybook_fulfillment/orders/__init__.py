"""
Order records, persistence and the forward-only order lifecycle.
"""

from .models import (
    DownloadHandle,
    GeneratedArtifact,
    Order,
    OrderStatus,
    PendingEvent,
    ShippingAddress,
)
from .repository import InMemoryOrderRepository, OrderRepository, SupabaseOrderRepository
from .state_machine import OrderStateMachine, can_transition, is_stale, is_terminal, status_rank

__all__ = [
    "DownloadHandle",
    "GeneratedArtifact",
    "InMemoryOrderRepository",
    "Order",
    "OrderRepository",
    "OrderStateMachine",
    "OrderStatus",
    "PendingEvent",
    "ShippingAddress",
    "SupabaseOrderRepository",
    "can_transition",
    "is_stale",
    "is_terminal",
    "status_rank",
]
