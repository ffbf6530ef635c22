"""
Badge and goal service.
Derives a student's badge and goal progress from their point total.
"""
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from habit_ledger.exceptions import RewardNotFoundException
from habit_ledger.models import Badge, Goal
from habit_ledger.repositories.reward_repository import BadgeRepository, GoalRepository
from habit_ledger.schemas import (
    BadgeCreate, BadgeResponse, GoalCreate, GoalProgress, GoalResponse, ProgressResponse
)


def find_badges(badges: List[Badge], total: int) -> Tuple[Optional[Badge], Optional[Badge]]:
    """
    Find the badge whose range holds total, and the one after it.

    Args:
        badges: Badges ordered by min_points
        total: Student's point total

    Returns:
        Tuple of (current_badge, next_badge); either may be None
    """
    for index, badge in enumerate(badges):
        if badge.min_points <= total <= badge.max_points:
            next_badge = badges[index + 1] if index + 1 < len(badges) else None
            return badge, next_badge
    return None, None


def badge_progress(total: int, current: Optional[Badge], next_badge: Optional[Badge]) -> float:
    """Percent of the way from the current badge to the next one"""
    if current is None or next_badge is None:
        return 0.0
    span = next_badge.min_points - current.min_points
    if span <= 0:
        return 100.0
    progress = (total - current.min_points) / span * 100
    return round(max(0.0, min(progress, 100.0)), 2)


def goal_progress(goal: Goal, total: int) -> GoalProgress:
    """Achieved goals report 0 progress, matching the tracker's display"""
    is_achieved = total >= goal.target_points
    progress = 0.0
    if not is_achieved and goal.target_points > 0:
        progress = total / goal.target_points * 100
    return GoalProgress(
        **GoalResponse.model_validate(goal).model_dump(),
        is_achieved=is_achieved,
        progress=round(max(0.0, min(progress, 100.0)), 2),
    )


class GoalService:
    """Service for badges and goals"""

    def __init__(self, db: Session):
        self.db = db
        self.badge_repo = BadgeRepository()
        self.goal_repo = GoalRepository()

    def create_badge(self, badge_data: BadgeCreate) -> Badge:
        return self.badge_repo.create(self.db, Badge(**badge_data.model_dump()))

    def create_goal(self, goal_data: GoalCreate) -> Goal:
        return self.goal_repo.create(self.db, Goal(**goal_data.model_dump()))

    def get_badges(self, teacher_id: str) -> List[Badge]:
        return self.badge_repo.get_by_teacher(self.db, teacher_id)

    def get_goals(self, teacher_id: str) -> List[Goal]:
        return self.goal_repo.get_by_teacher(self.db, teacher_id)

    def deactivate_badge(self, badge_id: int) -> Badge:
        """Retire a badge; it no longer counts toward any student's progress"""
        badge = self.badge_repo.get_by_id(self.db, badge_id)
        if not badge:
            raise RewardNotFoundException("badge", badge_id)
        badge.is_active = False
        return self.badge_repo.update(self.db, badge)

    def deactivate_goal(self, goal_id: int) -> Goal:
        goal = self.goal_repo.get_by_id(self.db, goal_id)
        if not goal:
            raise RewardNotFoundException("goal", goal_id)
        goal.is_active = False
        return self.goal_repo.update(self.db, goal)

    def get_progress(self, teacher_id: str, total: int) -> ProgressResponse:
        """Badge and goal progress for a student of this teacher"""
        badges = self.badge_repo.get_by_teacher(self.db, teacher_id)
        current, next_badge = find_badges(badges, total)

        return ProgressResponse(
            total_points=total,
            current_badge=BadgeResponse.model_validate(current) if current else None,
            next_badge=BadgeResponse.model_validate(next_badge) if next_badge else None,
            badge_progress=badge_progress(total, current, next_badge),
            goals=[goal_progress(goal, total) for goal in self.goal_repo.get_by_teacher(self.db, teacher_id)],
        )
