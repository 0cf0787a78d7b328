"""Onboarding record status lifecycle.

Canonical flow:
  pending -> in_progress -> submitted -> approved

Review and rework:
  submitted -> rejected
  rejected -> in_progress | submitted

``in_progress -> in_progress`` is an ordinary save. ``approved`` is terminal.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType


class OnboardingStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    SUBMITTED = 'submitted'
    APPROVED = 'approved'
    REJECTED = 'rejected'


ALLOWED_TRANSITIONS = MappingProxyType(
    {
        OnboardingStatus.PENDING: frozenset({
            OnboardingStatus.IN_PROGRESS,
            OnboardingStatus.SUBMITTED,
        }),
        OnboardingStatus.IN_PROGRESS: frozenset({
            OnboardingStatus.IN_PROGRESS,
            OnboardingStatus.SUBMITTED,
        }),
        OnboardingStatus.SUBMITTED: frozenset({
            OnboardingStatus.APPROVED,
            OnboardingStatus.REJECTED,
        }),
        OnboardingStatus.REJECTED: frozenset({
            OnboardingStatus.IN_PROGRESS,
            OnboardingStatus.SUBMITTED,
        }),
        OnboardingStatus.APPROVED: frozenset(),
    }
)

REVIEW_OUTCOMES = frozenset({OnboardingStatus.APPROVED, OnboardingStatus.REJECTED})


class InvalidStatusTransition(ValueError):
    """Raised for onboarding status changes outside ALLOWED_TRANSITIONS."""

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f'invalid onboarding transition: {from_status!r} -> {to_status!r}'
        )


def parse_status(value: str | None) -> OnboardingStatus:
    """Stored status to enum; a missing status is ``pending``."""
    if value is None:
        return OnboardingStatus.PENDING
    return OnboardingStatus(value)


def can_transition(from_status: OnboardingStatus, to_status: OnboardingStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[from_status]


def require_transition(
    from_status: OnboardingStatus | str | None,
    to_status: OnboardingStatus | str,
) -> OnboardingStatus:
    """Validate a transition and return the target status.

    Raises:
        InvalidStatusTransition: the move is not allowed (or a status is unknown).
    """
    try:
        current = (
            from_status if isinstance(from_status, OnboardingStatus)
            else parse_status(from_status)
        )
        target = OnboardingStatus(to_status)
    except ValueError:
        raise InvalidStatusTransition(str(from_status), str(to_status))

    if not can_transition(current, target):
        raise InvalidStatusTransition(current.value, target.value)
    return target
