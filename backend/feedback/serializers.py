from datetime import datetime

from backend.database import to_utc_iso, utc_now
from backend.feedback.lifecycle import feedback_age_days
from backend.models.feedback import Feedback
from backend.models.user import User, serialize_user_summary


def student_visible_to(feedback: Feedback, viewer: User | None) -> bool:
    if not feedback.is_anonymous:
        return True
    return viewer is not None and viewer.id == feedback.student_id


def serialize_feedback(feedback: Feedback, viewer: User | None, now: datetime | None = None) -> dict:
    now = now or utc_now()
    data = {
        'id': feedback.id,
        'teacher': serialize_user_summary(feedback.teacher),
        'subject': feedback.subject,
        'content': feedback.content,
        'rating': feedback.rating,
        'status': feedback.status.value,
        'teacherResponse': feedback.teacher_response,
        'isAnonymous': feedback.is_anonymous,
        'semester': feedback.semester,
        'academicYear': feedback.academic_year,
        'createdAt': to_utc_iso(feedback.created_at),
        'updatedAt': to_utc_iso(feedback.updated_at),
        'age': feedback_age_days(feedback.created_at, now),
    }
    if student_visible_to(feedback, viewer):
        data['student'] = serialize_user_summary(feedback.student)
    return data


def describe_activity(feedback: Feedback, viewer: User | None) -> dict:
    author = 'Anonymous student'
    if student_visible_to(feedback, viewer) and feedback.student is not None:
        author = feedback.student.username
    return {
        'id': feedback.id,
        'description': f'{author} submitted feedback for {feedback.subject}',
        'timestamp': to_utc_iso(feedback.created_at),
        'status': feedback.status.value,
    }
