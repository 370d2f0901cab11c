"""REST API for servicer submissions and intelligence."""

from .app import app, create_app
from .endpoints import router

__all__ = ["app", "create_app", "router"]
