"""Tests for the routing policy decision function.

Validates:
  - Rule ordering (public, anonymous, admin-only, admin landing,
    needs-workspace, workspace-exists, allow)
  - Path-boundary matching for public routes and the admin prefix
  - Properties that must hold over whole path sets
  - Injected RouteConfig is honoured
"""

from __future__ import annotations

import pytest

from portal.app.security.profile_loader import UserRole
from portal.app.security.routing_policy import (
    Decision,
    DecisionKind,
    decide,
    is_safe_redirect,
    landing_path,
)
from portal.app.settings import DEFAULT_ROUTES, RouteConfig

PUBLIC_PATHS = sorted(DEFAULT_ROUTES.public_routes) + ['/login/magic', '/verify/success']
PRIVATE_PATHS = [
    '/',
    '/dashboard',
    '/workspace',
    '/onboarding',
    '/onboarding/confirmation',
    '/settings',
    '/admin',
    '/admin/users',
    '/loginx',
    '/administrator',
]
ADMIN_PATHS = ['/admin', '/admin/users', '/admin/workspaces/ws-1']


def _redirect_target(decision: Decision) -> str | None:
    assert decision.kind is DecisionKind.REDIRECT
    return decision.target


# ── Scenarios ────────────────────────────────────────────────────────


def test_client_with_workspace_on_dashboard_is_allowed():
    decision = decide('/dashboard', True, 'client', True)
    assert decision.is_allowed


def test_client_on_admin_redirects_to_dashboard():
    decision = decide('/admin', True, 'client', True)
    assert _redirect_target(decision) == '/dashboard'
    assert decision.rule == 'admin_only'


def test_anonymous_on_login_is_allowed():
    assert decide('/login', False).is_allowed


def test_client_without_workspace_on_settings_redirects_to_workspace():
    decision = decide('/settings', True, 'client', False)
    assert _redirect_target(decision) == '/workspace'
    assert decision.rule == 'needs_workspace'


def test_admin_with_workspace_on_workspace_redirects_to_dashboard():
    # Rule 6 does not look at the role.
    decision = decide('/workspace', True, 'admin', True)
    assert _redirect_target(decision) == '/dashboard'
    assert decision.rule == 'workspace_exists'


def test_anonymous_on_private_page_keeps_original_path():
    decision = decide('/onboarding', False)
    assert _redirect_target(decision) == '/login'
    assert decision.preserve_original is True


def test_authenticated_without_workspace_on_public_goes_to_workspace():
    decision = decide('/signup', True, 'client', False)
    assert _redirect_target(decision) == '/workspace'
    assert decision.rule == 'public_authenticated'


def test_admin_without_workspace_is_not_sent_to_workspace_creation():
    assert decide('/admin/users', True, UserRole.ADMIN, False).is_allowed
    assert decide('/settings', True, UserRole.ADMIN, False).is_allowed


def test_client_without_workspace_on_workspace_is_allowed():
    assert decide('/workspace', True, 'client', False).is_allowed


def test_unknown_role_is_treated_as_client():
    decision = decide('/admin', True, 'superuser', True)
    assert _redirect_target(decision) == '/dashboard'


def test_missing_role_without_workspace_goes_to_workspace():
    # A verified identity with no profile row.
    decision = decide('/dashboard', True, None, False)
    assert _redirect_target(decision) == '/workspace'


def test_role_accepts_enum_or_string():
    assert decide('/dashboard', True, UserRole.ADMIN, True) == decide(
        '/dashboard', True, 'admin', True,
    )


# ── Properties ───────────────────────────────────────────────────────


@pytest.mark.parametrize('path', PUBLIC_PATHS)
@pytest.mark.parametrize('role', ['admin', 'client', None])
def test_public_paths_redirect_authenticated_callers_with_workspace(path, role):
    decision = decide(path, True, role, True)
    assert _redirect_target(decision) == '/dashboard'


@pytest.mark.parametrize('path', PUBLIC_PATHS)
def test_public_paths_allow_anonymous(path):
    assert decide(path, False).is_allowed


@pytest.mark.parametrize('path', PRIVATE_PATHS)
def test_private_paths_send_anonymous_to_login(path):
    decision = decide(path, False)
    assert _redirect_target(decision) == '/login'
    assert decision.preserve_original is True
    assert decision.rule == 'unauthenticated'


@pytest.mark.parametrize(
    'path',
    [p for p in PUBLIC_PATHS + PRIVATE_PATHS if not DEFAULT_ROUTES.is_admin(p)],
)
def test_client_without_workspace_always_lands_on_workspace(path):
    # Admin paths are excluded: the admin-only rule applies first.
    decision = decide(path, True, 'client', False)
    if path == '/workspace':
        assert decision.is_allowed
    else:
        assert _redirect_target(decision) == '/workspace'


@pytest.mark.parametrize('has_workspace', [True, False])
def test_admin_dashboard_always_redirects_to_admin(has_workspace):
    decision = decide('/dashboard', True, 'admin', has_workspace)
    assert _redirect_target(decision) == '/admin'
    assert decision.preserve_original is False


@pytest.mark.parametrize('path', ADMIN_PATHS)
@pytest.mark.parametrize('has_workspace', [True, False])
def test_admin_paths_allow_admins(path, has_workspace):
    assert decide(path, True, 'admin', has_workspace).is_allowed


@pytest.mark.parametrize('path', ADMIN_PATHS)
@pytest.mark.parametrize('has_workspace', [True, False])
def test_admin_paths_send_clients_to_dashboard(path, has_workspace):
    decision = decide(path, True, 'client', has_workspace)
    assert _redirect_target(decision) == '/dashboard'


def test_admin_prefix_uses_path_boundary():
    assert decide('/administrator', True, 'client', True).is_allowed


@pytest.mark.parametrize('path', PUBLIC_PATHS + PRIVATE_PATHS)
@pytest.mark.parametrize('authenticated', [True, False])
def test_decision_is_deterministic(path, authenticated):
    first = decide(path, authenticated, 'client', True)
    second = decide(path, authenticated, 'client', True)
    assert first == second


# ── Injected route layout ────────────────────────────────────────────


def test_custom_route_config_is_honoured():
    routes = RouteConfig(
        public_routes=frozenset({'/welcome'}),
        admin_prefix='/staff',
        login_path='/sign-in',
        workspace_path='/setup',
        dashboard_path='/home',
        admin_path='/staff',
    )
    assert decide('/welcome', False, routes=routes).is_allowed
    assert _redirect_target(decide('/login', False, routes=routes)) == '/sign-in'
    assert _redirect_target(decide('/staff/x', True, 'client', True, routes)) == '/home'
    assert _redirect_target(decide('/home', True, 'admin', True, routes)) == '/staff'
    assert _redirect_target(decide('/home', True, 'client', False, routes)) == '/setup'


# ── Helpers ──────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ('role', 'has_workspace', 'expected'),
    [
        ('admin', False, '/admin'),
        ('admin', True, '/admin'),
        ('client', True, '/dashboard'),
        ('client', False, '/workspace'),
        (None, False, '/workspace'),
    ],
)
def test_landing_path(role, has_workspace, expected):
    assert landing_path(role, has_workspace) == expected


@pytest.mark.parametrize(
    ('target', 'safe'),
    [
        ('/dashboard', True),
        ('/onboarding?step=2', True),
        ('//evil.example.com', False),
        ('https://evil.example.com', False),
        ('/\\evil.example.com', False),
        ('', False),
        (None, False),
    ],
)
def test_is_safe_redirect(target, safe):
    assert is_safe_redirect(target) is safe
