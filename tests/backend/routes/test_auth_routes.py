from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi import HTTPException, Response
from pydantic import ValidationError

from backend.auth import jwt_handler
from backend.auth.passwords import verify_password
from backend.database import utc_now
from backend.models.user import Role, User
from backend.routes.auth_routes import (
    FORGOT_PASSWORD_MESSAGE,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    UpdateProfileRequest,
    deactivate,
    forgot_password,
    list_teachers,
    login,
    register,
    reset_password,
    update_password,
    update_profile,
)
from backend.services.mailer import MailDeliveryError

_FAKE_REQUEST = SimpleNamespace(base_url='http://testserver/')


def _student_registration(**overrides) -> RegisterRequest:
    fields = {
        'username': 'testuser',
        'email': 'Test@Test.com',
        'password': 'password123',
        'role': 'student',
        'firstName': 'Test',
        'lastName': 'User',
        'studentId': '1234-5678',
        'academicYear': 1,
    }
    fields.update(overrides)
    return RegisterRequest(**fields)


def test_register_request_normalizes_student_fields() -> None:
    request = _student_registration()

    assert request.email == 'test@test.com'
    assert request.student_id == '12345678'
    assert request.role is Role.STUDENT


def test_register_request_requires_student_id_for_students() -> None:
    with pytest.raises(ValidationError):
        _student_registration(studentId=None)


def test_register_request_requires_department_for_teachers() -> None:
    with pytest.raises(ValidationError):
        RegisterRequest(
            username='teacher',
            email='teacher@university.edu',
            password='password123',
            role='teacher',
            firstName='Tina',
            lastName='Teacher',
        )


@pytest.mark.parametrize(
    'overrides',
    [{'password': '12345'}, {'username': 'ab'}, {'firstName': 'A'}, {'studentId': '1234'}, {'role': 'admin'}],
)
def test_register_request_rejects_invalid_input(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        _student_registration(**overrides)


def test_register_creates_user_and_returns_token(db) -> None:
    response = Response()

    body = register(data=_student_registration(), response=response, db=db)

    stored = db.query(User).filter(User.email == 'test@test.com').one()
    assert body['success'] is True
    assert jwt_handler.resolve_token(body['token']) == stored.id
    assert body['user']['username'] == 'testuser'
    assert 'hashed_password' not in body['user']
    assert 'password' not in body['user']
    assert verify_password('password123', stored.hashed_password)
    assert 'token=' in response.headers['set-cookie']


def test_register_rejects_duplicate_email(db, make_user) -> None:
    make_user(Role.STUDENT, email='test@test.com')

    with pytest.raises(HTTPException) as exception_info:
        register(data=_student_registration(), response=Response(), db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Email is already registered'


def test_login_returns_token_for_valid_credentials(db, make_user) -> None:
    user = make_user(Role.TEACHER, email='teacher@university.edu')

    body = login(
        data=LoginRequest(email='TEACHER@university.edu', password='password123'),
        response=Response(),
        db=db,
    )

    assert body['user']['id'] == user.id
    assert body['user']['department'] == 'Computer Science'


def test_login_rejects_wrong_password(db, make_user) -> None:
    make_user(Role.STUDENT, email='student@university.edu')

    with pytest.raises(HTTPException) as exception_info:
        login(data=LoginRequest(email='student@university.edu', password='nope-nope'), response=Response(), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid credentials'


def test_login_rejects_deactivated_account(db, make_user) -> None:
    make_user(Role.STUDENT, email='student@university.edu', is_active=False)

    with pytest.raises(HTTPException) as exception_info:
        login(data=LoginRequest(email='student@university.edu', password='password123'), response=Response(), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User account is deactivated'


def test_update_profile_ignores_fields_for_other_role(db, make_user) -> None:
    student = make_user(Role.STUDENT)

    body = update_profile(
        data=UpdateProfileRequest(firstName='Renamed', department='Physics'),
        current_user=student,
        db=db,
    )

    assert body['data']['firstName'] == 'Renamed'
    assert student.department is None


def test_update_profile_rejects_taken_username(db, make_user) -> None:
    make_user(Role.STUDENT, username='taken')
    student = make_user(Role.STUDENT)

    with pytest.raises(HTTPException) as exception_info:
        update_profile(data=UpdateProfileRequest(username='taken'), current_user=student, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Username is already taken'


def test_update_password_requires_current_password(db, make_user) -> None:
    student = make_user(Role.STUDENT)

    with pytest.raises(HTTPException) as exception_info:
        update_password(
            data=UpdatePasswordRequest(currentPassword='wrong-one', newPassword='brand-new-pass'),
            response=Response(),
            current_user=student,
            db=db,
        )

    assert exception_info.value.status_code == 401

    update_password(
        data=UpdatePasswordRequest(currentPassword='password123', newPassword='brand-new-pass'),
        response=Response(),
        current_user=student,
        db=db,
    )
    assert verify_password('brand-new-pass', student.hashed_password)


def test_deactivate_marks_account_inactive(db, make_user) -> None:
    student = make_user(Role.STUDENT)

    deactivate(response=Response(), current_user=student, db=db)

    db.refresh(student)
    assert student.is_active is False


def test_forgot_password_gives_same_answer_for_unknown_email(db, monkeypatch: pytest.MonkeyPatch) -> None:
    sent = []
    monkeypatch.setattr('backend.routes.auth_routes.send_password_reset_email', lambda *args: sent.append(args))

    body = forgot_password(data=ForgotPasswordRequest(email='nobody@university.edu'), request=_FAKE_REQUEST, db=db)

    assert body['message'] == FORGOT_PASSWORD_MESSAGE
    assert sent == []


def test_forgot_and_reset_password_flow(db, make_user, monkeypatch: pytest.MonkeyPatch) -> None:
    student = make_user(Role.STUDENT, email='student@university.edu')
    sent = []
    monkeypatch.setattr(
        'backend.routes.auth_routes.send_password_reset_email',
        lambda email, url: sent.append((email, url)),
    )

    body = forgot_password(data=ForgotPasswordRequest(email='student@university.edu'), request=_FAKE_REQUEST, db=db)

    assert body['message'] == FORGOT_PASSWORD_MESSAGE
    assert sent[0][0] == 'student@university.edu'
    assert sent[0][1].startswith('http://testserver/auth/resetpassword/')
    raw_token = sent[0][1].rsplit('/', 1)[1]
    assert student.reset_password_token == jwt_handler.hash_reset_token(raw_token)

    result = reset_password(
        token=raw_token,
        data=ResetPasswordRequest(password='another-pass'),
        response=Response(),
        db=db,
    )

    db.refresh(student)
    assert result['user']['id'] == student.id
    assert verify_password('another-pass', student.hashed_password)
    assert student.reset_password_token is None
    assert student.reset_password_expire is None


def test_forgot_password_clears_token_when_mail_fails(db, make_user, monkeypatch: pytest.MonkeyPatch) -> None:
    student = make_user(Role.STUDENT, email='student@university.edu')

    def failing_send(email, url):
        raise MailDeliveryError('SMTP down')

    monkeypatch.setattr('backend.routes.auth_routes.send_password_reset_email', failing_send)

    with pytest.raises(HTTPException) as exception_info:
        forgot_password(data=ForgotPasswordRequest(email='student@university.edu'), request=_FAKE_REQUEST, db=db)

    db.refresh(student)
    assert exception_info.value.status_code == 500
    assert exception_info.value.detail == 'Email could not be sent'
    assert student.reset_password_token is None
    assert student.reset_password_expire is None


def test_reset_password_rejects_expired_token(db, make_user) -> None:
    student = make_user(Role.STUDENT)
    raw_token = jwt_handler.issue_password_reset_token(student, utc_now() - timedelta(hours=2))
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        reset_password(token=raw_token, data=ResetPasswordRequest(password='another-pass'), response=Response(), db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid or expired token'


def test_list_teachers_returns_active_teachers_sorted(db, make_user) -> None:
    student = make_user(Role.STUDENT)
    make_user(Role.TEACHER, first_name='Zoe')
    make_user(Role.TEACHER, first_name='Adam')
    make_user(Role.TEACHER, first_name='Inactive', is_active=False)

    body = list_teachers(current_user=student, db=db)

    assert [teacher['firstName'] for teacher in body['data']] == ['Adam', 'Zoe']
    assert set(body['data'][0]) == {'id', 'firstName', 'lastName', 'department'}
