"""Portal FastAPI application."""

from .main import create_app
from .settings import PortalSettings, RouteConfig

__all__ = ["create_app", "PortalSettings", "RouteConfig"]
