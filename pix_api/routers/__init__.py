"""
API routers.
"""

from .health import router as health_router
from .pix import router as pix_router
from .webhook import router as webhook_router

__all__ = ["health_router", "pix_router", "webhook_router"]
