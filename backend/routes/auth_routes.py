import logging
import re

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import TOKEN_COOKIE_NAME, get_current_user
from backend.auth.passwords import hash_password, verify_password
from backend.auth.policy import Action, ensure_can_perform
from backend.core.config import settings
from backend.core.errors import InternalError, Unauthorized, ValidationError
from backend.core.responses import success
from backend.database import get_db, run_with_retries, utc_now
from backend.models.user import Role, User, serialize_user
from backend.services.mailer import MailDeliveryError, send_password_reset_email

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6
MIN_STUDY_YEAR = 1
MAX_STUDY_YEAR = 5
STUDENT_ID_PATTERN = re.compile(r'^\d{8}$')
FORGOT_PASSWORD_MESSAGE = 'If an account exists for that email, a reset link has been sent.'


def _check_username(value: str) -> str:
    normalized = value.strip()
    if len(normalized) < MIN_USERNAME_LENGTH:
        raise ValueError(f'Username must be at least {MIN_USERNAME_LENGTH} characters long.')
    return normalized


def _check_name(value: str) -> str:
    normalized = value.strip()
    if len(normalized) < MIN_NAME_LENGTH:
        raise ValueError(f'Names must be at least {MIN_NAME_LENGTH} characters long.')
    return normalized


def _check_password(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long.')
    return value


def _check_student_id(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = re.sub(r'\D', '', value)
    if not STUDENT_ID_PATTERN.match(normalized):
        raise ValueError('Student ID must be exactly 8 digits.')
    return normalized


def _check_study_year(value: int | None) -> int | None:
    if value is not None and not MIN_STUDY_YEAR <= value <= MAX_STUDY_YEAR:
        raise ValueError(f'Academic year must be between {MIN_STUDY_YEAR} and {MAX_STUDY_YEAR}.')
    return value


class RegisterRequest(BaseModel):
    username: str
    email: EmailStr
    password: str
    role: Role
    first_name: str = Field(alias='firstName')
    last_name: str = Field(alias='lastName')
    student_id: str | None = Field(default=None, alias='studentId')
    academic_year: int | None = Field(default=None, alias='academicYear')
    department: str | None = None

    class Config:
        populate_by_name = True

    @field_validator('username')
    @classmethod
    def validate_username(cls, value: str) -> str:
        return _check_username(value)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _check_password(value)

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_names(cls, value: str) -> str:
        return _check_name(value)

    @field_validator('student_id')
    @classmethod
    def validate_student_id(cls, value: str | None) -> str | None:
        return _check_student_id(value)

    @field_validator('academic_year')
    @classmethod
    def validate_academic_year(cls, value: int | None) -> int | None:
        return _check_study_year(value)

    @model_validator(mode='after')
    def validate_role_fields(self) -> 'RegisterRequest':
        if self.role is Role.STUDENT:
            if not self.student_id:
                raise ValueError('Student ID is required')
            if self.academic_year is None:
                raise ValueError('Academic Year is required')
            self.department = None
        else:
            if not self.department or not self.department.strip():
                raise ValueError('Department is required')
            self.department = self.department.strip()
            self.student_id = None
            self.academic_year = None
        return self


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UpdateProfileRequest(BaseModel):
    username: str | None = None
    email: EmailStr | None = None
    first_name: str | None = Field(default=None, alias='firstName')
    last_name: str | None = Field(default=None, alias='lastName')
    student_id: str | None = Field(default=None, alias='studentId')
    academic_year: int | None = Field(default=None, alias='academicYear')
    department: str | None = None

    class Config:
        populate_by_name = True

    @field_validator('username')
    @classmethod
    def validate_username(cls, value: str | None) -> str | None:
        return None if value is None else _check_username(value)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        return None if value is None else value.strip().lower()

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_names(cls, value: str | None) -> str | None:
        return None if value is None else _check_name(value)

    @field_validator('student_id')
    @classmethod
    def validate_student_id(cls, value: str | None) -> str | None:
        return _check_student_id(value)

    @field_validator('academic_year')
    @classmethod
    def validate_academic_year(cls, value: int | None) -> int | None:
        return _check_study_year(value)


class UpdatePasswordRequest(BaseModel):
    current_password: str = Field(alias='currentPassword')
    new_password: str = Field(alias='newPassword')

    class Config:
        populate_by_name = True

    @field_validator('new_password')
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        return _check_password(value)


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class ResetPasswordRequest(BaseModel):
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _check_password(value)


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        TOKEN_COOKIE_NAME,
        token,
        max_age=settings.cookie_expires_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite='lax',
    )


def token_response(user: User, response: Response) -> dict:
    token = jwt_handler.create_access_token(user.id)
    set_token_cookie(response, token)
    return {'success': True, 'token': token, 'user': serialize_user(user)}


def ensure_unique_identity(db: Session, email: str | None, username: str | None, exclude_id: int | None = None) -> None:
    if email is not None:
        query = db.query(User).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if run_with_retries(query.first, db=db) is not None:
            raise ValidationError('Email is already registered')

    if username is not None:
        query = db.query(User).filter(User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if run_with_retries(query.first, db=db) is not None:
            raise ValidationError('Username is already taken')


@router.post('/register', status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    ensure_unique_identity(db, data.email, data.username)

    user = User(
        username=data.username,
        email=data.email,
        hashed_password=hash_password(data.password),
        role=data.role,
        first_name=data.first_name,
        last_name=data.last_name,
        student_id=data.student_id,
        academic_year=data.academic_year,
        department=data.department,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info('Registered %s account %s', user.role.value, user.id)
    return token_response(user, response)


@router.post('/login')
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = run_with_retries(db.query(User).filter(User.email == data.email).first, db=db)

    if user is None or not verify_password(data.password, user.hashed_password):
        logger.warning('Failed login attempt for %s', data.email)
        raise Unauthorized('Invalid credentials')

    if not user.is_active:
        raise Unauthorized('User account is deactivated')

    return token_response(user, response)


@router.get('/logout')
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE_NAME)
    return success({}, message='Logged out')


@router.get('/me')
def me(current_user: User = Depends(get_current_user)):
    return success(serialize_user(current_user))


@router.put('/update-profile')
def update_profile(
    data: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_unique_identity(db, data.email, data.username, exclude_id=current_user.id)

    if data.username is not None:
        current_user.username = data.username
    if data.email is not None:
        current_user.email = data.email
    if data.first_name is not None:
        current_user.first_name = data.first_name
    if data.last_name is not None:
        current_user.last_name = data.last_name

    if current_user.role is Role.STUDENT:
        if data.student_id is not None:
            current_user.student_id = data.student_id
        if data.academic_year is not None:
            current_user.academic_year = data.academic_year
    elif data.department is not None and data.department.strip():
        current_user.department = data.department.strip()

    db.commit()
    db.refresh(current_user)
    return success(serialize_user(current_user))


@router.put('/updatepassword')
def update_password(
    data: UpdatePasswordRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(data.current_password, current_user.hashed_password):
        raise Unauthorized('Current password is incorrect')

    current_user.hashed_password = hash_password(data.new_password)
    db.commit()
    db.refresh(current_user)
    return token_response(current_user, response)


@router.put('/deactivate')
def deactivate(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    current_user.is_active = False
    db.commit()
    response.delete_cookie(TOKEN_COOKIE_NAME)
    logger.info('Deactivated account %s', current_user.id)
    return success({}, message='Account deactivated')


@router.post('/forgotpassword')
def forgot_password(data: ForgotPasswordRequest, request: Request, db: Session = Depends(get_db)):
    user = run_with_retries(db.query(User).filter(User.email == data.email).first, db=db)

    # Same answer whether or not the address exists.
    if user is None or not user.is_active:
        return success({}, message=FORGOT_PASSWORD_MESSAGE)

    raw_token = jwt_handler.issue_password_reset_token(user, utc_now())
    db.commit()
    logger.info('Issued password reset token for account %s', user.id)

    reset_url = f"{str(request.base_url).rstrip('/')}/auth/resetpassword/{raw_token}"
    try:
        send_password_reset_email(user.email, reset_url)
    except MailDeliveryError as exc:
        logger.error('Password reset e-mail for account %s failed: %s', user.id, exc)
        jwt_handler.clear_password_reset_token(user)
        db.commit()
        raise InternalError('Email could not be sent') from exc

    return success({}, message=FORGOT_PASSWORD_MESSAGE)


@router.put('/resetpassword/{token}')
def reset_password(token: str, data: ResetPasswordRequest, response: Response, db: Session = Depends(get_db)):
    hashed_token = jwt_handler.hash_reset_token(token)
    user = run_with_retries(
        db.query(User).filter(
            User.reset_password_token == hashed_token,
            User.reset_password_expire > utc_now(),
        ).first,
        db=db,
    )

    if user is None:
        raise ValidationError('Invalid or expired token')

    user.hashed_password = hash_password(data.password)
    jwt_handler.clear_password_reset_token(user)
    db.commit()
    db.refresh(user)
    return token_response(user, response)


@router.get('/teachers')
def list_teachers(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_can_perform(current_user, Action.LIST_TEACHERS)

    teachers = run_with_retries(
        db.query(User).filter(
            User.role == Role.TEACHER,
            User.is_active.is_(True),
        ).order_by(User.first_name.asc(), User.last_name.asc()).all,
        db=db,
    )
    return success(
        [
            {
                'id': teacher.id,
                'firstName': teacher.first_name,
                'lastName': teacher.last_name,
                'department': teacher.department,
            }
            for teacher in teachers
        ],
        count=len(teachers),
    )
