"""Role based access rules for feedback and analytics.

Every (role, action) pair has an explicit rule in ``RULES``; the module
refuses to import if a pair is missing, so adding a role or an action forces
a decision here.
"""

import enum
from datetime import datetime
from typing import Callable

from backend.core.errors import Forbidden, Unauthorized
from backend.database import utc_now
from backend.feedback.lifecycle import EDIT_WINDOW_DAYS, is_within_edit_window
from backend.feedback.repository import FeedbackScope
from backend.models.feedback import Feedback
from backend.models.user import Role, User


class Action(str, enum.Enum):
    CREATE_FEEDBACK = 'create_feedback'
    READ_FEEDBACK = 'read_feedback'
    LIST_FEEDBACK = 'list_feedback'
    UPDATE_FEEDBACK_CONTENT = 'update_feedback_content'
    UPDATE_FEEDBACK_REVIEW = 'update_feedback_review'
    DELETE_FEEDBACK = 'delete_feedback'
    VIEW_ANALYTICS = 'view_analytics'
    LIST_TEACHERS = 'list_teachers'


Rule = Callable[[User, Feedback | None, datetime], bool]


def _always(actor: User, feedback: Feedback | None, now: datetime) -> bool:
    return True


def _never(actor: User, feedback: Feedback | None, now: datetime) -> bool:
    return False


def _owning_student(actor: User, feedback: Feedback | None, now: datetime) -> bool:
    return feedback is not None and feedback.student_id == actor.id


def _owning_teacher(actor: User, feedback: Feedback | None, now: datetime) -> bool:
    return feedback is not None and feedback.teacher_id == actor.id


def _owning_student_in_edit_window(actor: User, feedback: Feedback | None, now: datetime) -> bool:
    return _owning_student(actor, feedback, now) and is_within_edit_window(feedback, now)


RULES: dict[tuple[Role, Action], Rule] = {
    (Role.STUDENT, Action.CREATE_FEEDBACK): _always,
    (Role.STUDENT, Action.READ_FEEDBACK): _owning_student,
    (Role.STUDENT, Action.LIST_FEEDBACK): _always,
    (Role.STUDENT, Action.UPDATE_FEEDBACK_CONTENT): _owning_student_in_edit_window,
    (Role.STUDENT, Action.UPDATE_FEEDBACK_REVIEW): _never,
    (Role.STUDENT, Action.DELETE_FEEDBACK): _owning_student,
    (Role.STUDENT, Action.VIEW_ANALYTICS): _never,
    (Role.STUDENT, Action.LIST_TEACHERS): _always,
    (Role.TEACHER, Action.CREATE_FEEDBACK): _never,
    (Role.TEACHER, Action.READ_FEEDBACK): _owning_teacher,
    (Role.TEACHER, Action.LIST_FEEDBACK): _always,
    (Role.TEACHER, Action.UPDATE_FEEDBACK_CONTENT): _never,
    (Role.TEACHER, Action.UPDATE_FEEDBACK_REVIEW): _owning_teacher,
    (Role.TEACHER, Action.DELETE_FEEDBACK): _owning_teacher,
    (Role.TEACHER, Action.VIEW_ANALYTICS): _always,
    (Role.TEACHER, Action.LIST_TEACHERS): _always,
}

DENIAL_MESSAGES = {
    Action.CREATE_FEEDBACK: 'Only students can submit feedback',
    Action.READ_FEEDBACK: 'Not authorized to view this feedback',
    Action.LIST_FEEDBACK: 'Not authorized to list feedback',
    Action.UPDATE_FEEDBACK_CONTENT: 'Not authorized to update this feedback',
    Action.UPDATE_FEEDBACK_REVIEW: 'Not authorized to update this feedback',
    Action.DELETE_FEEDBACK: 'Not authorized to delete this feedback',
    Action.VIEW_ANALYTICS: 'Only teachers can access analytics',
    Action.LIST_TEACHERS: 'Not authorized to list teachers',
}


def _check_rules_cover_every_pair() -> None:
    missing = [
        f'{role.value}/{action.value}'
        for role in Role
        for action in Action
        if (role, action) not in RULES
    ]
    if missing:
        raise RuntimeError(f'Authorization rules missing for: {", ".join(missing)}')


_check_rules_cover_every_pair()


def can_perform(actor: User, action: Action, feedback: Feedback | None = None, now: datetime | None = None) -> bool:
    if not actor.is_active:
        return False
    return RULES[(actor.role, action)](actor, feedback, now or utc_now())


def ensure_can_perform(
    actor: User,
    action: Action,
    feedback: Feedback | None = None,
    now: datetime | None = None,
) -> None:
    if not actor.is_active:
        raise Unauthorized('User account is deactivated')

    now = now or utc_now()
    if can_perform(actor, action, feedback, now):
        return

    if action is Action.UPDATE_FEEDBACK_CONTENT and _owning_student(actor, feedback, now):
        raise Forbidden(
            f'Only pending feedback can be edited, within {EDIT_WINDOW_DAYS} days of creation'
        )
    raise Forbidden(DENIAL_MESSAGES[action])


def feedback_scope(actor: User) -> FeedbackScope:
    if actor.role is Role.STUDENT:
        return FeedbackScope(student_id=actor.id)
    if actor.role is Role.TEACHER:
        return FeedbackScope(teacher_id=actor.id)
    raise Forbidden(DENIAL_MESSAGES[Action.LIST_FEEDBACK])
