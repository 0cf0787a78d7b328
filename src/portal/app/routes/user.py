"""User profile and role management endpoints.

Response contracts:
  GET  /api/user/profile     -> 200 { user, workspace }
  GET  /api/user/list        -> 200 { users: [...] }            (admin)
  POST /api/user/update-role -> 200 { user }                    (admin)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from portal.app.protocols import UserRepository, WorkspaceRepository
from portal.app.routes.context import PortalContext, get_portal_context, require_admin
from portal.app.security.profile_loader import UserRole

logger = logging.getLogger(__name__)


class UpdateRoleRequest(BaseModel):
    user_id: str = Field(..., alias='userId', min_length=1)
    role: UserRole


def create_user_router(
    user_repo: UserRepository,
    workspace_repo: WorkspaceRepository,
) -> APIRouter:
    router = APIRouter(tags=['user'])

    @router.get('/api/user/profile')
    async def get_profile(ctx: PortalContext = Depends(get_portal_context)):
        if ctx.profile is None:
            return JSONResponse(
                status_code=404,
                content={
                    'error': 'profile_not_found',
                    'detail': 'No profile exists for this user',
                },
            )
        workspace = None
        if ctx.profile.workspace_id:
            workspace = await workspace_repo.get(ctx.profile.workspace_id)
        return {'user': ctx.profile.as_dict(), 'workspace': workspace}

    @router.get('/api/user/list')
    async def list_users(ctx: PortalContext = Depends(require_admin)):
        return {'users': await user_repo.list_all()}

    @router.post('/api/user/update-role')
    async def update_role(
        body: UpdateRoleRequest,
        ctx: PortalContext = Depends(require_admin),
    ):
        """Set a user's portal role. Admins cannot demote themselves."""
        if body.user_id == ctx.user_id and body.role is not UserRole.ADMIN:
            return JSONResponse(
                status_code=400,
                content={
                    'error': 'cannot_demote_self',
                    'detail': 'Admins cannot remove their own admin role',
                },
            )

        updated = await user_repo.update(body.user_id, {'role': body.role.value})
        if updated is None:
            return JSONResponse(
                status_code=404,
                content={
                    'error': 'user_not_found',
                    'detail': f'User {body.user_id!r} not found',
                },
            )
        logger.info('User %s set role of %s to %s', ctx.user_id, body.user_id, body.role.value)
        return {'user': updated}

    return router
