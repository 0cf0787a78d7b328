"""Onboarding questionnaire endpoints.

One record per workspace, created lazily on the first save. Answers are an
opaque JSON object; each save merges the posted answers into the stored
ones. Every status change goes through ``require_transition`` and a
rejected move answers 409.

Submit honours an ``Idempotency-Key`` header: a repeated submit carrying
the key already stored on the record returns that record unchanged.

Response contracts:
  GET  /api/onboarding        -> 200 { data: record | null }
  POST /api/onboarding        -> 200 { data }
  POST /api/onboarding/submit -> 200 { success, data, replayed }
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from portal.app.db.errors import SupabaseConflictError
from portal.app.onboarding.lifecycle import (
    InvalidStatusTransition,
    OnboardingStatus,
    require_transition,
)
from portal.app.protocols import OnboardingRepository
from portal.app.routes.context import PortalContext, get_portal_context

logger = logging.getLogger(__name__)


class SaveOnboardingRequest(BaseModel):
    workspace_id: str | None = None
    answers: dict[str, Any] = Field(default_factory=dict)


class SubmitOnboardingRequest(BaseModel):
    workspace_id: str | None = None
    answers: dict[str, Any] = Field(default_factory=dict)


def _resolve_workspace(
    ctx: PortalContext, requested: str | None,
) -> tuple[str | None, JSONResponse | None]:
    """Pick the target workspace and check the caller may write to it.

    Owners act on their own workspace; admins may act on any.
    """
    workspace_id = requested or ctx.workspace_id
    if not workspace_id:
        return None, JSONResponse(
            status_code=404,
            content={
                'error': 'workspace_not_found',
                'detail': 'No workspace found for this user',
            },
        )
    if workspace_id != ctx.workspace_id and not ctx.is_admin:
        return None, JSONResponse(
            status_code=403,
            content={
                'error': 'forbidden',
                'detail': 'You do not have access to this workspace',
            },
        )
    return workspace_id, None


def _transition_conflict(exc: InvalidStatusTransition) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            'error': 'invalid_transition',
            'detail': str(exc),
            'from_status': exc.from_status,
            'to_status': exc.to_status,
        },
    )


def create_onboarding_router(onboarding_repo: OnboardingRepository) -> APIRouter:
    router = APIRouter(tags=['onboarding'])

    async def _write(
        workspace_id: str,
        record: dict[str, Any] | None,
        data: dict[str, Any],
    ) -> dict[str, Any] | None:
        if record is None:
            try:
                return await onboarding_repo.create(workspace_id, data)
            except SupabaseConflictError:
                # Another request created the record first.
                logger.info('Onboarding record for %s created concurrently', workspace_id)
        return await onboarding_repo.update(workspace_id, data)

    async def _save(
        ctx: PortalContext,
        requested_workspace: str | None,
        answers: dict[str, Any],
        target: OnboardingStatus,
        extra: dict[str, Any] | None = None,
    ):
        workspace_id, error = _resolve_workspace(ctx, requested_workspace)
        if error is not None:
            return error

        record = await onboarding_repo.get_for_workspace(workspace_id)
        current = record.get('status') if record else None
        try:
            status = require_transition(current, target)
        except InvalidStatusTransition as exc:
            return _transition_conflict(exc)

        merged = {**((record or {}).get('answers') or {}), **answers}
        data = {'answers': merged, 'status': status.value, **(extra or {})}
        written = await _write(workspace_id, record, data)
        if written is None:
            return JSONResponse(
                status_code=404,
                content={
                    'error': 'onboarding_not_found',
                    'detail': 'Onboarding record disappeared during the update',
                },
            )
        return written

    @router.get('/api/onboarding')
    async def get_onboarding(ctx: PortalContext = Depends(get_portal_context)):
        """The caller's onboarding record, ``null`` when none exists yet."""
        if not ctx.workspace_id:
            return JSONResponse(
                status_code=404,
                content={
                    'error': 'workspace_not_found',
                    'detail': 'No workspace found for this user',
                },
            )
        record = await onboarding_repo.get_for_workspace(ctx.workspace_id)
        return {'data': record}

    @router.post('/api/onboarding')
    async def save_onboarding(
        body: SaveOnboardingRequest,
        ctx: PortalContext = Depends(get_portal_context),
    ):
        """Save answers; the record moves to ``in_progress``."""
        result = await _save(
            ctx, body.workspace_id, body.answers, OnboardingStatus.IN_PROGRESS,
        )
        if isinstance(result, JSONResponse):
            return result
        return {'data': result}

    @router.post('/api/onboarding/submit')
    async def submit_onboarding(
        body: SubmitOnboardingRequest,
        ctx: PortalContext = Depends(get_portal_context),
        idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    ):
        """Submit the questionnaire for review."""
        if idempotency_key:
            workspace_id, error = _resolve_workspace(ctx, body.workspace_id)
            if error is not None:
                return error
            record = await onboarding_repo.get_for_workspace(workspace_id)
            if record and record.get('submit_idempotency_key') == idempotency_key:
                return {'success': True, 'data': record, 'replayed': True}

        result = await _save(
            ctx,
            body.workspace_id,
            body.answers,
            OnboardingStatus.SUBMITTED,
            extra={
                'submitted_at': datetime.now(timezone.utc).isoformat(),
                'submit_idempotency_key': idempotency_key,
            },
        )
        if isinstance(result, JSONResponse):
            return result
        logger.info('Onboarding submitted for workspace %s by %s', result.get('workspace_id'), ctx.user_id)
        return {'success': True, 'data': result, 'replayed': False}

    return router
