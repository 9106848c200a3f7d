"""HTTP routers."""

from .responses import router as responses_router
from .webhooks import create_webhook_router

__all__ = ["create_webhook_router", "responses_router"]
