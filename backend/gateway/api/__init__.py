"""API routers."""

from gateway.api.completions import router as completions_router
from gateway.api.health import router as health_router
from gateway.api.models import router as models_router

__all__ = [
    "completions_router",
    "health_router",
    "models_router",
]
