"""User model definitions."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String

from backend.database import Base, utc_now


class Role(str, enum.Enum):
    STUDENT = 'student'
    TEACHER = 'teacher'


class User(Base):
    """Represents a student or teacher account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(
        Enum(Role, native_enum=False, values_callable=lambda roles: [role.value for role in roles]),
        nullable=False,
    )
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    student_id = Column(String)  # students only
    academic_year = Column(Integer)  # students only, year of study
    department = Column(String)  # teachers only
    is_active = Column(Boolean, default=True, nullable=False)
    reset_password_token = Column(String, index=True)
    reset_password_expire = Column(DateTime)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)


def serialize_user(user: User) -> dict:
    data = {
        'id': user.id,
        'username': user.username,
        'email': user.email,
        'role': user.role.value,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'isActive': user.is_active,
    }
    if user.role is Role.STUDENT:
        data['studentId'] = user.student_id
        data['academicYear'] = user.academic_year
    else:
        data['department'] = user.department
    return data


def serialize_user_summary(user: User | None) -> dict | None:
    if user is None:
        return None
    return {
        'id': user.id,
        'username': user.username,
        'firstName': user.first_name,
        'lastName': user.last_name,
    }
