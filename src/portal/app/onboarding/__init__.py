"""Onboarding questionnaire records and their status lifecycle."""

from .lifecycle import (
    ALLOWED_TRANSITIONS,
    InvalidStatusTransition,
    OnboardingStatus,
    require_transition,
)

__all__ = [
    'ALLOWED_TRANSITIONS',
    'InvalidStatusTransition',
    'OnboardingStatus',
    'require_transition',
]
