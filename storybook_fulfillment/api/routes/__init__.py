from storybook_fulfillment.api.routes.orders import build_orders_router
from storybook_fulfillment.api.routes.webhooks import build_webhook_router

__all__ = ["build_orders_router", "build_webhook_router"]
