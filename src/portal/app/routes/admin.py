"""Admin endpoints. Every route requires the ``admin`` portal role.

Reads use the service-role repositories so admins see every tenant.

Response contracts:
  GET  /api/admin/users                             -> 200 { users: [... + workspace] }
  GET  /api/admin/workspaces                        -> 200 { workspaces: [... + onboarding_status] }
  POST /api/admin/onboarding/{workspace_id}/review  -> 200 { data }
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from portal.app.onboarding.lifecycle import InvalidStatusTransition, require_transition
from portal.app.protocols import (
    OnboardingRepository,
    UserRepository,
    WorkspaceRepository,
)
from portal.app.routes.context import PortalContext, require_admin

logger = logging.getLogger(__name__)


class ReviewRequest(BaseModel):
    status: Literal['approved', 'rejected']
    notes: str | None = Field(default=None, max_length=2000)


def create_admin_router(
    user_repo: UserRepository,
    workspace_repo: WorkspaceRepository,
    onboarding_repo: OnboardingRepository,
) -> APIRouter:
    router = APIRouter(tags=['admin'])

    @router.get('/api/admin/users')
    async def list_users(ctx: PortalContext = Depends(require_admin)):
        """All users, each with its workspace embedded (or null)."""
        users = await user_repo.list_all()
        workspaces = {ws['id']: ws for ws in await workspace_repo.list_all()}
        return {
            'users': [
                {**user, 'workspace': workspaces.get(user.get('workspace_id'))}
                for user in users
            ],
        }

    @router.get('/api/admin/workspaces')
    async def list_workspaces(ctx: PortalContext = Depends(require_admin)):
        workspaces = await workspace_repo.list_all()
        statuses = {
            record['workspace_id']: record.get('status')
            for record in await onboarding_repo.list_all()
        }
        return {
            'workspaces': [
                {**ws, 'onboarding_status': statuses.get(ws['id'])}
                for ws in workspaces
            ],
        }

    @router.post('/api/admin/onboarding/{workspace_id}/review')
    async def review_onboarding(
        workspace_id: str,
        body: ReviewRequest,
        ctx: PortalContext = Depends(require_admin),
    ):
        """Approve or reject a submitted questionnaire."""
        record = await onboarding_repo.get_for_workspace(workspace_id)
        if record is None:
            return JSONResponse(
                status_code=404,
                content={
                    'error': 'onboarding_not_found',
                    'detail': f'No onboarding record for workspace {workspace_id!r}',
                },
            )

        try:
            status = require_transition(record.get('status'), body.status)
        except InvalidStatusTransition as exc:
            return JSONResponse(
                status_code=409,
                content={
                    'error': 'invalid_transition',
                    'detail': str(exc),
                    'from_status': exc.from_status,
                    'to_status': exc.to_status,
                },
            )

        updated = await onboarding_repo.update(workspace_id, {
            'status': status.value,
            'reviewed_by': ctx.user_id,
            'reviewed_at': datetime.now(timezone.utc).isoformat(),
            'review_notes': body.notes,
        })
        logger.info(
            'Onboarding for workspace %s %s by %s', workspace_id, status.value, ctx.user_id,
        )
        return {'data': updated}

    return router
