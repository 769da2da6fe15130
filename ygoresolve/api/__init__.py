from ygoresolve.api.health import router as health_router
from ygoresolve.api.lookup import router as lookup_router

__all__ = [
    "health_router",
    "lookup_router",
]
