from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from backend.auth.policy import RULES, Action, can_perform, ensure_can_perform, feedback_scope
from backend.feedback.repository import FeedbackScope
from backend.models.feedback import Feedback, FeedbackStatus
from backend.models.user import Role, User

NOW = datetime(2026, 3, 10, 12, 0)

STUDENT = User(id=1, role=Role.STUDENT, is_active=True)
OTHER_STUDENT = User(id=3, role=Role.STUDENT, is_active=True)
TEACHER = User(id=2, role=Role.TEACHER, is_active=True)
OTHER_TEACHER = User(id=4, role=Role.TEACHER, is_active=True)


def _feedback(status: FeedbackStatus = FeedbackStatus.PENDING, age: timedelta = timedelta(0)) -> Feedback:
    return Feedback(id=7, student_id=1, teacher_id=2, status=status, created_at=NOW - age)


def test_rules_cover_every_role_and_action() -> None:
    assert set(RULES) == {(role, action) for role in Role for action in Action}


@pytest.mark.parametrize(
    ('actor', 'action', 'expected'),
    [
        (STUDENT, Action.CREATE_FEEDBACK, True),
        (TEACHER, Action.CREATE_FEEDBACK, False),
        (STUDENT, Action.READ_FEEDBACK, True),
        (OTHER_STUDENT, Action.READ_FEEDBACK, False),
        (TEACHER, Action.READ_FEEDBACK, True),
        (OTHER_TEACHER, Action.READ_FEEDBACK, False),
        (STUDENT, Action.UPDATE_FEEDBACK_CONTENT, True),
        (TEACHER, Action.UPDATE_FEEDBACK_CONTENT, False),
        (STUDENT, Action.UPDATE_FEEDBACK_REVIEW, False),
        (TEACHER, Action.UPDATE_FEEDBACK_REVIEW, True),
        (OTHER_TEACHER, Action.UPDATE_FEEDBACK_REVIEW, False),
        (STUDENT, Action.DELETE_FEEDBACK, True),
        (OTHER_STUDENT, Action.DELETE_FEEDBACK, False),
        (TEACHER, Action.DELETE_FEEDBACK, True),
        (OTHER_TEACHER, Action.DELETE_FEEDBACK, False),
        (STUDENT, Action.VIEW_ANALYTICS, False),
        (TEACHER, Action.VIEW_ANALYTICS, True),
        (STUDENT, Action.LIST_TEACHERS, True),
        (TEACHER, Action.LIST_TEACHERS, True),
    ],
)
def test_can_perform_follows_ownership_rules(actor: User, action: Action, expected: bool) -> None:
    assert can_perform(actor, action, _feedback(), NOW) is expected


def test_student_content_update_closes_after_edit_window() -> None:
    assert can_perform(STUDENT, Action.UPDATE_FEEDBACK_CONTENT, _feedback(age=timedelta(days=6, hours=23)), NOW)
    assert not can_perform(STUDENT, Action.UPDATE_FEEDBACK_CONTENT, _feedback(age=timedelta(days=7)), NOW)


def test_student_content_update_requires_pending_status() -> None:
    reviewed = _feedback(status=FeedbackStatus.REVIEWED)

    assert not can_perform(STUDENT, Action.UPDATE_FEEDBACK_CONTENT, reviewed, NOW)


def test_delete_has_no_age_or_status_gate() -> None:
    archived = _feedback(status=FeedbackStatus.ARCHIVED, age=timedelta(days=400))

    assert can_perform(STUDENT, Action.DELETE_FEEDBACK, archived, NOW)
    assert can_perform(TEACHER, Action.DELETE_FEEDBACK, archived, NOW)


def test_inactive_actor_is_denied_everything() -> None:
    inactive = User(id=1, role=Role.STUDENT, is_active=False)

    assert not any(can_perform(inactive, action, _feedback(), NOW) for action in Action)

    with pytest.raises(HTTPException) as exception_info:
        ensure_can_perform(inactive, Action.LIST_TEACHERS, now=NOW)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User account is deactivated'


def test_ensure_can_perform_raises_forbidden_for_non_owner() -> None:
    with pytest.raises(HTTPException) as exception_info:
        ensure_can_perform(OTHER_TEACHER, Action.READ_FEEDBACK, _feedback(), NOW)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Not authorized to view this feedback'


def test_ensure_can_perform_explains_closed_edit_window() -> None:
    with pytest.raises(HTTPException) as exception_info:
        ensure_can_perform(STUDENT, Action.UPDATE_FEEDBACK_CONTENT, _feedback(age=timedelta(days=8)), NOW)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only pending feedback can be edited, within 7 days of creation'


def test_feedback_scope_matches_role() -> None:
    assert feedback_scope(STUDENT) == FeedbackScope(student_id=1)
    assert feedback_scope(TEACHER) == FeedbackScope(teacher_id=2)
