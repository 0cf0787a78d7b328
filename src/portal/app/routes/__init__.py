"""JSON API route factories."""

from .admin import create_admin_router
from .auth import create_auth_router
from .onboarding import create_onboarding_router
from .user import create_user_router
from .workspaces import create_workspace_router

__all__ = [
    'create_admin_router',
    'create_auth_router',
    'create_onboarding_router',
    'create_user_router',
    'create_workspace_router',
]
