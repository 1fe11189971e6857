import logging
from typing import Any

import pydantic
from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel, Field, StrictInt, field_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.auth.policy import Action, ensure_can_perform, feedback_scope
from backend.core.errors import NotFound, ValidationError
from backend.core.responses import success
from backend.database import get_db, run_with_retries, utc_now
from backend.feedback import lifecycle, reporting
from backend.feedback.repository import FeedbackRepository
from backend.feedback.serializers import describe_activity, serialize_feedback
from backend.models.feedback import Feedback, FeedbackStatus
from backend.models.user import Role, User

router = APIRouter(tags=['feedback'])

logger = logging.getLogger(__name__)

RECENT_ITEMS_LIMIT = 5


class CreateFeedbackRequest(BaseModel):
    teacher: int
    subject: str
    content: str
    rating: StrictInt
    semester: StrictInt
    academic_year: str = Field(alias='academicYear')
    is_anonymous: bool = Field(default=False, alias='isAnonymous')

    class Config:
        populate_by_name = True

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, value: str) -> str:
        return lifecycle.check_subject(value)

    @field_validator('content')
    @classmethod
    def validate_content(cls, value: str) -> str:
        return lifecycle.check_content(value)

    @field_validator('rating')
    @classmethod
    def validate_rating(cls, value: int) -> int:
        return lifecycle.check_rating(value)

    @field_validator('semester')
    @classmethod
    def validate_semester(cls, value: int) -> int:
        return lifecycle.check_semester(value)

    @field_validator('academic_year')
    @classmethod
    def validate_academic_year(cls, value: str) -> str:
        return lifecycle.check_academic_year(value)


class StudentFeedbackUpdate(BaseModel):
    subject: str | None = None
    content: str | None = None
    rating: StrictInt | None = None
    semester: StrictInt | None = None
    academic_year: str | None = Field(default=None, alias='academicYear')
    is_anonymous: bool | None = Field(default=None, alias='isAnonymous')

    class Config:
        populate_by_name = True

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, value: str | None) -> str | None:
        return None if value is None else lifecycle.check_subject(value)

    @field_validator('content')
    @classmethod
    def validate_content(cls, value: str | None) -> str | None:
        return None if value is None else lifecycle.check_content(value)

    @field_validator('rating')
    @classmethod
    def validate_rating(cls, value: int | None) -> int | None:
        return None if value is None else lifecycle.check_rating(value)

    @field_validator('semester')
    @classmethod
    def validate_semester(cls, value: int | None) -> int | None:
        return None if value is None else lifecycle.check_semester(value)

    @field_validator('academic_year')
    @classmethod
    def validate_academic_year(cls, value: str | None) -> str | None:
        return None if value is None else lifecycle.check_academic_year(value)


class TeacherFeedbackUpdate(BaseModel):
    status: FeedbackStatus | None = None
    teacher_response: str | None = Field(default=None, alias='teacherResponse')

    class Config:
        populate_by_name = True

    @field_validator('teacher_response')
    @classmethod
    def validate_teacher_response(cls, value: str | None) -> str | None:
        return lifecycle.check_teacher_response(value)


def parse_update(model: type[BaseModel], payload: dict[str, Any]) -> BaseModel:
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        messages = [error['msg'].removeprefix('Value error, ') for error in exc.errors()]
        raise ValidationError('. '.join(messages)) from exc


def get_feedback_or_404(feedback_id: int, repository: FeedbackRepository) -> Feedback:
    feedback = repository.get(feedback_id)
    if feedback is None:
        raise NotFound('Feedback not found')
    return feedback


@router.get('/stats')
def feedback_stats(
    time_range: str | None = Query(default=None, alias='timeRange'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_perform(current_user, Action.LIST_FEEDBACK)
    selected_range = reporting.parse_time_range(time_range)
    repository = FeedbackRepository(db)
    scope = feedback_scope(current_user)
    now = utc_now()

    start = reporting.window_start(selected_range, now)
    rows = repository.rows_by_scope(scope, start=start)
    ratings = [row.rating for row in rows]
    breakdown = reporting.status_breakdown(repository.count_by_status(scope, start=start))

    return success({
        'timeRange': selected_range.value,
        'total': len(rows),
        'averageRating': reporting.average_rating(ratings),
        'ratingDistribution': reporting.rating_distribution(ratings),
        'pending': breakdown[FeedbackStatus.PENDING.value],
        'reviewed': breakdown[FeedbackStatus.REVIEWED.value],
        'archived': breakdown[FeedbackStatus.ARCHIVED.value],
    })


@router.get('/analytics')
def feedback_analytics(
    time_range: str | None = Query(default=None, alias='timeRange'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_perform(current_user, Action.VIEW_ANALYTICS)
    selected_range = reporting.parse_time_range(time_range)
    repository = FeedbackRepository(db)
    scope = feedback_scope(current_user)
    now = utc_now()

    report = reporting.build_report(repository, scope, selected_range, now)
    report['recentFeedback'] = [
        serialize_feedback(feedback, current_user, now)
        for feedback in repository.recent(scope, RECENT_ITEMS_LIMIT)
    ]
    return success(report)


@router.get('/dashboard-stats')
def dashboard_stats(
    time_range: str | None = Query(default=None, alias='timeRange'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_perform(current_user, Action.LIST_FEEDBACK)
    selected_range = reporting.parse_time_range(time_range)
    repository = FeedbackRepository(db)
    scope = feedback_scope(current_user)
    now = utc_now()

    all_rows = repository.rows_by_scope(scope)
    totals = reporting.summarize_window(all_rows)
    breakdown = reporting.status_breakdown(repository.count_by_status(scope))
    report = reporting.build_report(repository, scope, selected_range, now)
    total_users = run_with_retries(
        db.query(User).filter(User.is_active.is_(True)).count,
        db=db,
    )

    return success({
        'timeRange': selected_range.value,
        'totalFeedbacks': totals.count,
        'averageRating': reporting.average_rating(row.rating for row in all_rows),
        'pendingFeedbacks': breakdown[FeedbackStatus.PENDING.value],
        'reviewedFeedbacks': breakdown[FeedbackStatus.REVIEWED.value],
        'archivedFeedbacks': breakdown[FeedbackStatus.ARCHIVED.value],
        'responseRate': reporting.response_rate(totals.reviewed, totals.count),
        'totalUsers': total_users,
        'periodStats': {
            'totalFeedback': report['totalFeedback'],
            'averageRating': report['averageRating'],
            'responseRate': report['responseRate'],
            **report['growth'],
        },
        'recentActivities': [
            describe_activity(feedback, current_user)
            for feedback in repository.recent(scope, RECENT_ITEMS_LIMIT)
        ],
    })


@router.get('')
def list_feedback(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_can_perform(current_user, Action.LIST_FEEDBACK)
    now = utc_now()
    feedback_items = FeedbackRepository(db).find_by_scope(feedback_scope(current_user))
    return success(
        [serialize_feedback(feedback, current_user, now) for feedback in feedback_items],
        count=len(feedback_items),
    )


@router.post('', status_code=status.HTTP_201_CREATED)
def create_feedback(
    data: CreateFeedbackRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_can_perform(current_user, Action.CREATE_FEEDBACK)
    now = utc_now()

    teacher = run_with_retries(lambda: db.get(User, data.teacher), db=db)
    feedback = lifecycle.new_feedback(current_user, teacher, data.model_dump(exclude={'teacher'}), now)
    FeedbackRepository(db).add(feedback)

    logger.info('Student %s submitted feedback %s for teacher %s', current_user.id, feedback.id, teacher.id)
    return success(serialize_feedback(feedback, current_user, now))


@router.get('/{feedback_id}')
def get_feedback(
    feedback_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    feedback = get_feedback_or_404(feedback_id, FeedbackRepository(db))
    ensure_can_perform(current_user, Action.READ_FEEDBACK, feedback)
    return success(serialize_feedback(feedback, current_user))


@router.put('/{feedback_id}')
def update_feedback(
    feedback_id: int,
    payload: dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    feedback = get_feedback_or_404(feedback_id, FeedbackRepository(db))
    now = utc_now()

    if current_user.role is Role.STUDENT:
        ensure_can_perform(current_user, Action.UPDATE_FEEDBACK_CONTENT, feedback, now)
        update = parse_update(StudentFeedbackUpdate, payload)
        lifecycle.apply_student_edit(feedback, update.model_dump(), now)
    elif current_user.role is Role.TEACHER:
        ensure_can_perform(current_user, Action.UPDATE_FEEDBACK_REVIEW, feedback, now)
        update = parse_update(TeacherFeedbackUpdate, payload)
        lifecycle.apply_teacher_review(feedback, update.status, update.teacher_response, now)

    db.commit()
    db.refresh(feedback)
    logger.info('Feedback %s updated by %s %s', feedback.id, current_user.role.value, current_user.id)
    return success(serialize_feedback(feedback, current_user, now))


@router.delete('/{feedback_id}')
def delete_feedback(
    feedback_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    feedback = get_feedback_or_404(feedback_id, FeedbackRepository(db))
    ensure_can_perform(current_user, Action.DELETE_FEEDBACK, feedback)

    db.delete(feedback)
    db.commit()
    logger.info('Feedback %s deleted by %s %s', feedback_id, current_user.role.value, current_user.id)
    return success({}, message='Feedback deleted successfully')
