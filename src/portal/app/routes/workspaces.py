"""Workspace endpoints.

A user owns at most one workspace. Creation and linking the owner's user
row happen in one repository call (one database transaction in Supabase),
and the unique owner constraint turns a racing duplicate into a 409.

Response contracts:
  POST /api/workspace/create -> 201 { message, workspace }
  GET  /api/workspace        -> 200 { workspace }
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from portal.app.db.errors import SupabaseConflictError, SupabaseError
from portal.app.protocols import WorkspaceRepository
from portal.app.routes.context import PortalContext, get_portal_context
from portal.app.security.profile_loader import ProfileLoader, ProfileUnavailable

logger = logging.getLogger(__name__)

SUBDOMAIN_PATTERN = r'^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$'


class CreateWorkspaceRequest(BaseModel):
    company_name: str = Field(..., alias='companyName', min_length=1, max_length=128)
    subdomain: str | None = Field(default=None, pattern=SUBDOMAIN_PATTERN)


def _workspace_exists() -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            'error': 'workspace_exists',
            'detail': 'This user already has a workspace.',
        },
    )


def create_workspace_router(
    workspace_repo: WorkspaceRepository,
    profile_loader: ProfileLoader,
) -> APIRouter:
    """Create the workspace router.

    Args:
        workspace_repo: Workspace storage with atomic create-and-link.
        profile_loader: Ensures the owner's profile row exists first.
    """
    router = APIRouter(tags=['workspaces'])

    @router.post('/api/workspace/create', status_code=201)
    async def create_workspace(
        body: CreateWorkspaceRequest,
        ctx: PortalContext = Depends(get_portal_context),
    ):
        """Create the caller's workspace and link it to their profile."""
        try:
            profile = await profile_loader.ensure_profile(ctx.identity, ctx.access_token)
        except ProfileUnavailable:
            return JSONResponse(
                status_code=503,
                content={
                    'error': 'profile_unavailable',
                    'detail': 'User profile could not be loaded',
                },
            )
        if profile.has_workspace:
            return _workspace_exists()

        name = body.company_name.strip()
        if not name:
            return JSONResponse(
                status_code=400,
                content={'error': 'invalid_request', 'detail': 'Company name is required'},
            )

        try:
            workspace = await workspace_repo.create_for_owner(
                ctx.user_id, name, body.subdomain,
            )
        except SupabaseConflictError as exc:
            logger.info('Workspace create conflict for %s: %s', ctx.user_id, exc.message)
            if body.subdomain and exc.mentions('subdomain'):
                return JSONResponse(
                    status_code=409,
                    content={
                        'error': 'subdomain_taken',
                        'detail': f'Subdomain {body.subdomain!r} is already in use.',
                    },
                )
            return _workspace_exists()
        except SupabaseError as exc:
            logger.error(
                'Workspace create failed for %s: status=%s code=%s',
                ctx.user_id, exc.status_code, exc.code,
            )
            return JSONResponse(
                status_code=502,
                content={
                    'error': 'workspace_create_failed',
                    'detail': 'Workspace could not be created',
                },
            )

        logger.info('Workspace %s created for %s', workspace.get('id'), ctx.user_id)
        return {'message': 'Workspace created successfully', 'workspace': workspace}

    @router.get('/api/workspace')
    async def get_workspace(ctx: PortalContext = Depends(get_portal_context)):
        workspace = None
        if ctx.workspace_id:
            workspace = await workspace_repo.get(ctx.workspace_id)
        if workspace is None:
            return JSONResponse(
                status_code=404,
                content={
                    'error': 'workspace_not_found',
                    'detail': 'No workspace found for this user',
                },
            )
        return {'workspace': workspace}

    return router
