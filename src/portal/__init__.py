"""Workspace portal: onboarding and admin backend in front of Supabase."""

from .app import PortalSettings, create_app

__all__ = ["PortalSettings", "create_app"]
