"""Feedback creation, editing window and status transitions.

Field checks raise ``ValueError`` so they can back pydantic validators; the
record-level operations raise ``ValidationError`` from ``backend.core.errors``.
"""

import logging
import re
from datetime import datetime

from backend.core.errors import ValidationError
from backend.models.feedback import Feedback, FeedbackStatus
from backend.models.user import Role, User

logger = logging.getLogger(__name__)

SUBJECTS = (
    'Data Structures and Algorithms',
    'Object-Oriented Programming',
    'Database Management Systems',
    'Operating Systems',
    'Computer Networks',
    'Software Engineering',
    'Web Development',
    'Artificial Intelligence',
    'Machine Learning',
    'Computer Architecture',
    'Theory of Computation',
    'Compiler Design',
    'Computer Graphics',
    'Cryptography and Network Security',
    'Cloud Computing',
    'Big Data Analytics',
    'Mobile App Development',
    'Digital Logic Design',
    'Discrete Mathematics',
    'Python Programming',
)

MIN_CONTENT_LENGTH = 10
MAX_CONTENT_LENGTH = 1000
MIN_RATING = 1
MAX_RATING = 5
MIN_SEMESTER = 1
MAX_SEMESTER = 8
MAX_TEACHER_RESPONSE_LENGTH = 500
EDIT_WINDOW_DAYS = 7
ACADEMIC_YEAR_PATTERN = re.compile(r'^[0-9]{4}-[0-9]{4}$')

SECONDS_PER_DAY = 24 * 60 * 60

ALLOWED_TRANSITIONS = {
    FeedbackStatus.PENDING: {FeedbackStatus.REVIEWED, FeedbackStatus.ARCHIVED},
    FeedbackStatus.REVIEWED: {FeedbackStatus.ARCHIVED},
    FeedbackStatus.ARCHIVED: set(),
}

CONTENT_FIELDS = ('subject', 'content', 'rating', 'semester', 'academic_year', 'is_anonymous')


def check_subject(value: str) -> str:
    normalized = value.strip()
    if normalized not in SUBJECTS:
        raise ValueError(f'{value} is not a valid subject.')
    return normalized


def check_content(value: str) -> str:
    normalized = value.strip()
    if len(normalized) < MIN_CONTENT_LENGTH:
        raise ValueError(f'Feedback content must be at least {MIN_CONTENT_LENGTH} characters long.')
    if len(normalized) > MAX_CONTENT_LENGTH:
        raise ValueError(f'Feedback content cannot exceed {MAX_CONTENT_LENGTH} characters.')
    return normalized


def check_rating(value: int) -> int:
    if not MIN_RATING <= value <= MAX_RATING:
        raise ValueError(f'Rating must be between {MIN_RATING} and {MAX_RATING}.')
    return value


def check_semester(value: int) -> int:
    if not MIN_SEMESTER <= value <= MAX_SEMESTER:
        raise ValueError(f'Semester must be between {MIN_SEMESTER} and {MAX_SEMESTER}.')
    return value


def check_academic_year(value: str) -> str:
    normalized = value.strip()
    if not ACADEMIC_YEAR_PATTERN.match(normalized):
        raise ValueError('Invalid academic year format. Must be in YYYY-YYYY format.')
    start_year, end_year = (int(part) for part in normalized.split('-'))
    if end_year != start_year + 1:
        raise ValueError('Invalid academic year. End year must be start year + 1.')
    return normalized


def check_teacher_response(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if len(normalized) > MAX_TEACHER_RESPONSE_LENGTH:
        raise ValueError(f'Teacher response cannot exceed {MAX_TEACHER_RESPONSE_LENGTH} characters.')
    return normalized


def feedback_age_days(created_at: datetime, now: datetime) -> int:
    return int((now - created_at).total_seconds() // SECONDS_PER_DAY)


def is_within_edit_window(feedback: Feedback, now: datetime) -> bool:
    return (
        feedback.status is FeedbackStatus.PENDING
        and feedback_age_days(feedback.created_at, now) < EDIT_WINDOW_DAYS
    )


def check_transition(current: FeedbackStatus, target: FeedbackStatus) -> FeedbackStatus:
    if target is current or target in ALLOWED_TRANSITIONS[current]:
        return target
    raise ValidationError(f'Feedback cannot move from {current.value} to {target.value}.')


def check_teacher_reference(student: User, teacher: User | None) -> User:
    if teacher is None or teacher.role is not Role.TEACHER or not teacher.is_active:
        raise ValidationError('Invalid teacher selected')
    if teacher.id == student.id:
        raise ValidationError('Teacher and student cannot be the same user')
    return teacher


def new_feedback(student: User, teacher: User | None, fields: dict, now: datetime) -> Feedback:
    """Build a pending feedback record authored by ``student``.

    Any status supplied by the caller is ignored.
    """
    check_teacher_reference(student, teacher)
    return Feedback(
        student_id=student.id,
        teacher_id=teacher.id,
        subject=fields['subject'],
        content=fields['content'],
        rating=fields['rating'],
        semester=fields['semester'],
        academic_year=fields['academic_year'],
        is_anonymous=bool(fields.get('is_anonymous', False)),
        status=FeedbackStatus.PENDING,
        created_at=now,
        updated_at=now,
    )


def apply_student_edit(feedback: Feedback, fields: dict, now: datetime) -> Feedback:
    if not is_within_edit_window(feedback, now):
        raise ValidationError(
            f'Only pending feedback can be edited, within {EDIT_WINDOW_DAYS} days of creation.'
        )

    for name in CONTENT_FIELDS:
        if fields.get(name) is not None:
            setattr(feedback, name, fields[name])
    feedback.updated_at = now
    return feedback


def apply_teacher_review(
    feedback: Feedback,
    status: FeedbackStatus | None,
    teacher_response: str | None,
    now: datetime,
) -> Feedback:
    if status is not None:
        new_status = check_transition(feedback.status, status)
        if new_status is not feedback.status:
            logger.info('Feedback %s moved from %s to %s', feedback.id, feedback.status.value, new_status.value)
        feedback.status = new_status
    if teacher_response is not None:
        feedback.teacher_response = teacher_response or None
    feedback.updated_at = now
    return feedback
