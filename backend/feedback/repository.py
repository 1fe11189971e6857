from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from backend.database import run_with_retries
from backend.models.feedback import Feedback, FeedbackStatus


@dataclass(frozen=True)
class FeedbackScope:
    """Restricts queries to one student's or one teacher's feedback.

    A scope with neither id set covers every record.
    """
    student_id: int | None = None
    teacher_id: int | None = None


@dataclass(frozen=True)
class FeedbackRow:
    created_at: datetime
    rating: int
    status: FeedbackStatus


@dataclass(frozen=True)
class DayGroup:
    day: date
    count: int
    rating_sum: int


class FeedbackRepository:
    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, query: Query, scope: FeedbackScope, start: datetime | None, end: datetime | None) -> Query:
        if scope.student_id is not None:
            query = query.filter(Feedback.student_id == scope.student_id)
        if scope.teacher_id is not None:
            query = query.filter(Feedback.teacher_id == scope.teacher_id)
        if start is not None:
            query = query.filter(Feedback.created_at >= start)
        if end is not None:
            query = query.filter(Feedback.created_at < end)
        return query

    def get(self, feedback_id: int) -> Feedback | None:
        return run_with_retries(lambda: self.db.get(Feedback, feedback_id), db=self.db)

    def add(self, feedback: Feedback) -> Feedback:
        def insert() -> Feedback:
            self.db.add(feedback)
            self.db.commit()
            self.db.refresh(feedback)
            return feedback

        return run_with_retries(insert, db=self.db)

    def find_by_scope(
        self,
        scope: FeedbackScope,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Feedback]:
        query = self._scoped(self.db.query(Feedback), scope, start, end)
        return run_with_retries(
            lambda: query.order_by(Feedback.created_at.desc(), Feedback.id.desc()).all(),
            db=self.db,
        )

    def recent(self, scope: FeedbackScope, limit: int = 5) -> list[Feedback]:
        query = self._scoped(self.db.query(Feedback), scope, None, None)
        return run_with_retries(
            lambda: query.order_by(Feedback.created_at.desc(), Feedback.id.desc()).limit(limit).all(),
            db=self.db,
        )

    def rows_by_scope(
        self,
        scope: FeedbackScope,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[FeedbackRow]:
        query = self._scoped(
            self.db.query(Feedback.created_at, Feedback.rating, Feedback.status),
            scope,
            start,
            end,
        )
        rows = run_with_retries(query.all, db=self.db)
        return [FeedbackRow(created_at=created_at, rating=rating, status=status) for created_at, rating, status in rows]

    def count_by_status(
        self,
        scope: FeedbackScope,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[FeedbackStatus, int]:
        query = self._scoped(
            self.db.query(Feedback.status, func.count(Feedback.id)),
            scope,
            start,
            end,
        ).group_by(Feedback.status)
        counts = {feedback_status: 0 for feedback_status in FeedbackStatus}
        for feedback_status, count in run_with_retries(query.all, db=self.db):
            counts[FeedbackStatus(feedback_status)] = count
        return counts

    def group_by_day(
        self,
        scope: FeedbackScope,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[DayGroup]:
        counts: dict[date, int] = defaultdict(int)
        sums: dict[date, int] = defaultdict(int)
        for row in self.rows_by_scope(scope, start, end):
            day = row.created_at.date()
            counts[day] += 1
            sums[day] += row.rating
        return [DayGroup(day=day, count=counts[day], rating_sum=sums[day]) for day in sorted(counts)]
