"""
API module.
Contains the read-only diagnostics FastAPI application.
"""

from pgjobs.api.main import create_app, run

__all__ = ["create_app", "run"]
