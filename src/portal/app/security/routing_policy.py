"""Routing policy: who may see which page, and where everyone else goes.

``decide()`` is a pure function of (path, authenticated, role, has_workspace)
and the injected ``RouteConfig``. Rules, first match wins:

  1. public route: authenticated callers go to the dashboard (or workspace
     creation when they have no workspace); anonymous callers are allowed.
  2. anonymous caller on any other route: login, keeping the original path.
  3. admin route, caller not admin: dashboard.
  4. admin caller on the dashboard: admin landing page.
  5. non-admin without a workspace, anywhere but workspace creation:
     workspace creation.
  6. caller with a workspace on workspace creation: dashboard. Applies to
     every role.
  7. allow.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..settings import DEFAULT_ROUTES, RouteConfig


class DecisionKind(str, Enum):
    ALLOW = 'allow'
    REDIRECT = 'redirect'


@dataclass(frozen=True, slots=True)
class Decision:
    """Result of a routing decision.

    Attributes:
        kind: Allow or redirect.
        target: Redirect path (None when allowed).
        preserve_original: Carry the requested path as ``redirectTo``.
        rule: Which rule produced the decision, for logging.
    """

    kind: DecisionKind
    target: str | None = None
    preserve_original: bool = False
    rule: str = ''

    @classmethod
    def allow(cls, rule: str = 'default') -> Decision:
        return cls(kind=DecisionKind.ALLOW, rule=rule)

    @classmethod
    def redirect(
        cls,
        target: str,
        preserve_original: bool = False,
        rule: str = '',
    ) -> Decision:
        return cls(
            kind=DecisionKind.REDIRECT,
            target=target,
            preserve_original=preserve_original,
            rule=rule,
        )

    @property
    def is_allowed(self) -> bool:
        return self.kind is DecisionKind.ALLOW


def _is_admin(role: Any) -> bool:
    # Accepts UserRole or a raw string; anything but "admin" is not admin.
    value = getattr(role, 'value', role)
    return value == 'admin'


def decide(
    pathname: str,
    authenticated: bool,
    role: Any = None,
    has_workspace: bool = False,
    routes: RouteConfig = DEFAULT_ROUTES,
) -> Decision:
    """Decide whether ``pathname`` is served or redirected."""
    is_admin = authenticated and _is_admin(role)

    if routes.is_public(pathname):
        if not authenticated:
            return Decision.allow('public')
        target = routes.dashboard_path if has_workspace else routes.workspace_path
        return Decision.redirect(target, rule='public_authenticated')

    if not authenticated:
        return Decision.redirect(
            routes.login_path,
            preserve_original=True,
            rule='unauthenticated',
        )

    if routes.is_admin(pathname) and not is_admin:
        return Decision.redirect(routes.dashboard_path, rule='admin_only')

    if is_admin and pathname == routes.dashboard_path:
        return Decision.redirect(routes.admin_path, rule='admin_landing')

    if not is_admin and not has_workspace and pathname != routes.workspace_path:
        return Decision.redirect(routes.workspace_path, rule='needs_workspace')

    if has_workspace and pathname == routes.workspace_path:
        return Decision.redirect(routes.dashboard_path, rule='workspace_exists')

    return Decision.allow()


def landing_path(
    role: Any = None,
    has_workspace: bool = False,
    routes: RouteConfig = DEFAULT_ROUTES,
) -> str:
    """Where a freshly signed-in caller belongs."""
    if _is_admin(role):
        return routes.admin_path
    return routes.dashboard_path if has_workspace else routes.workspace_path


def is_safe_redirect(target: str | None) -> bool:
    """Only same-origin absolute paths are accepted as post-login targets."""
    if not target or not target.startswith('/'):
        return False
    return not target.startswith('//') and '\\' not in target
