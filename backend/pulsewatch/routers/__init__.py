"""API routers."""
from .monitoring import router as monitoring_router
from .monitors import router as monitors_router
from .status import router as status_router

__all__ = ["monitoring_router", "monitors_router", "status_router"]
