"""Milestone detection for savings goals."""

from __future__ import annotations

from typing import Iterable, Optional

from ..domain.repositories import GoalRepository
from ..errors import GoalNotFound
from ..logging_config import get_logger

logger = get_logger(__name__)

# Ordered (threshold, label) pairs; the last one completes the goal.
MILESTONES: tuple[tuple[float, str], ...] = (
    (0.25, "25%"),
    (0.50, "50%"),
    (0.75, "75%"),
    (1.00, "100%"),
)
COMPLETION_LABEL = "100%"


def newly_reached_milestones(
    current_amount: float, target_amount: float, achieved: Iterable[str]
) -> list[str]:
    """Return labels whose threshold is reached but not yet recorded, in order."""

    if target_amount <= 0:
        return []
    progress = current_amount / target_amount
    already = set(achieved)
    return [
        label for threshold, label in MILESTONES if progress >= threshold and label not in already
    ]


def next_milestone_label(achieved: Iterable[str]) -> Optional[str]:
    """First label not yet achieved, or ``None`` once every milestone is recorded."""

    already = set(achieved)
    for _, label in MILESTONES:
        if label not in already:
            return label
    return None


def check_milestones(goal_repo: GoalRepository, goal_id: int) -> list[str]:
    """Record newly crossed milestones and complete the goal at 100%.

    Safe to call repeatedly: labels already present are ignored and nothing is
    ever removed, even if the goal's total has since gone down.
    """

    goal = goal_repo.get_by_id(goal_id)
    if goal is None:
        raise GoalNotFound(goal_id)

    achieved = list(goal.achieved_milestones or [])
    new_labels = newly_reached_milestones(goal.current_amount, goal.target_amount, achieved)
    if not new_labels:
        return []

    completes = COMPLETION_LABEL in new_labels
    goal_repo.record_milestones(
        goal_id,
        new_labels,
        next_milestone=next_milestone_label([*achieved, *new_labels]),
        complete=completes,
    )
    logger.info(
        "Milestones reached",
        extra={"goal_id": goal_id, "milestones": new_labels, "completed": completes},
    )
    return new_labels


__all__ = [
    "MILESTONES",
    "COMPLETION_LABEL",
    "check_milestones",
    "newly_reached_milestones",
    "next_milestone_label",
]
