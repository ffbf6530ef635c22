"""
Reward repository - Data access layer for badges and goals.
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_

from habit_ledger.models import Badge, Goal


class BadgeRepository:
    """Repository for Badge data access"""

    @staticmethod
    def get_by_id(db: Session, badge_id: int) -> Optional[Badge]:
        """Get an active badge by ID"""
        return db.query(Badge).filter(
            and_(
                Badge.id == badge_id,
                Badge.is_active == True
            )
        ).first()

    @staticmethod
    def get_by_teacher(db: Session, teacher_id: str) -> List[Badge]:
        """Get active badges of a teacher ordered by min_points"""
        return db.query(Badge).filter(
            and_(
                Badge.teacher_id == teacher_id,
                Badge.is_active == True
            )
        ).order_by(Badge.min_points).all()

    @staticmethod
    def create(db: Session, badge: Badge) -> Badge:
        """Create new badge"""
        db.add(badge)
        db.commit()
        db.refresh(badge)
        return badge

    @staticmethod
    def update(db: Session, badge: Badge) -> Badge:
        db.commit()
        db.refresh(badge)
        return badge


class GoalRepository:
    """Repository for Goal data access"""

    @staticmethod
    def get_by_id(db: Session, goal_id: int) -> Optional[Goal]:
        """Get an active goal by ID"""
        return db.query(Goal).filter(
            and_(
                Goal.id == goal_id,
                Goal.is_active == True
            )
        ).first()

    @staticmethod
    def get_by_teacher(db: Session, teacher_id: str) -> List[Goal]:
        """Get active goals of a teacher ordered by target_points"""
        return db.query(Goal).filter(
            and_(
                Goal.teacher_id == teacher_id,
                Goal.is_active == True
            )
        ).order_by(Goal.target_points).all()

    @staticmethod
    def create(db: Session, goal: Goal) -> Goal:
        """Create new goal"""
        db.add(goal)
        db.commit()
        db.refresh(goal)
        return goal

    @staticmethod
    def update(db: Session, goal: Goal) -> Goal:
        db.commit()
        db.refresh(goal)
        return goal
