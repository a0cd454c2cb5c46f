"""
Storybook fulfillment package: order lifecycle, book rendering, print hand-off
and provider reconciliation.
"""

from .book import BookContent, StoryPage
from .fulfillment import FulfillmentDispatcher, FulfillmentOutcome, FulfillmentResult
from .orders import Order, OrderStateMachine, OrderStatus
from .pdf_generation import BookType, Channel, DocumentAssembler, StorybookPageCompositor
from .reconciliation import ProviderStatusMap, ReconciliationListener

__all__ = [
    "BookContent",
    "BookType",
    "Channel",
    "DocumentAssembler",
    "FulfillmentDispatcher",
    "FulfillmentOutcome",
    "FulfillmentResult",
    "Order",
    "OrderStateMachine",
    "OrderStatus",
    "ProviderStatusMap",
    "ReconciliationListener",
    "StoryPage",
    "StorybookPageCompositor",
]
