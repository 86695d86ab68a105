"""
API routes module.
"""

from pgjobs.api.routes.health import router as health_router
from pgjobs.api.routes.stats import router as stats_router

__all__ = ["health_router", "stats_router"]
