"""Campaign lifecycle states and the allowed transitions between them."""

from enum import Enum


class CampaignStatus(str, Enum):
    SCHEDULED = "scheduled"
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TRANSITIONS: dict[CampaignStatus, frozenset[CampaignStatus]] = {
    CampaignStatus.SCHEDULED: frozenset(
        {CampaignStatus.COUNTDOWN, CampaignStatus.PLAYING, CampaignStatus.CANCELLED}
    ),
    CampaignStatus.COUNTDOWN: frozenset({CampaignStatus.PLAYING, CampaignStatus.CANCELLED}),
    CampaignStatus.PLAYING: frozenset({CampaignStatus.COMPLETED, CampaignStatus.CANCELLED}),
    CampaignStatus.COMPLETED: frozenset(),
    CampaignStatus.CANCELLED: frozenset(),
}

ACTIVE_STATUSES = (CampaignStatus.COUNTDOWN.value, CampaignStatus.PLAYING.value)
TERMINAL_STATUSES = (CampaignStatus.COMPLETED.value, CampaignStatus.CANCELLED.value)

ALLOWED_COUNTDOWNS = (0, 10, 30, 60, 120, 300)


class InvalidTransition(RuntimeError):
    pass


def can_transition(current: str, target: str) -> bool:
    return CampaignStatus(target) in TRANSITIONS[CampaignStatus(current)]


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(f"Campaign cannot move from {current} to {target}")


def is_terminal(status: str) -> bool:
    return not TRANSITIONS[CampaignStatus(status)]
