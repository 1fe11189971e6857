import itertools
import os
from datetime import timedelta

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('DB_RETRY_BACKOFF_SECONDS', '0')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-with-at-least-32-bytes')

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.auth.jwt_handler import create_access_token  # noqa: E402
from backend.auth.passwords import hash_password  # noqa: E402
from backend.database import Base, get_db, utc_now  # noqa: E402
from backend.models.feedback import Feedback, FeedbackStatus  # noqa: E402
from backend.models.user import Role, User  # noqa: E402

DEFAULT_PASSWORD = 'password123'
DEFAULT_PASSWORD_HASH = hash_password(DEFAULT_PASSWORD)


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make_user(role: Role = Role.STUDENT, **overrides) -> User:
        number = next(counter)
        fields = {
            'username': f'{role.value}{number}',
            'email': f'{role.value}{number}@university.edu',
            'hashed_password': DEFAULT_PASSWORD_HASH,
            'role': role,
            'first_name': f'First{number}',
            'last_name': f'Last{number}',
            'is_active': True,
        }
        if role is Role.STUDENT:
            fields.update(student_id=f'{number:08d}', academic_year=2)
        else:
            fields.update(department='Computer Science')
        fields.update(overrides)

        user = User(**fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_feedback(db):
    def _make_feedback(student: User, teacher: User, age: timedelta = timedelta(0), **overrides) -> Feedback:
        created_at = utc_now() - age
        fields = {
            'student_id': student.id,
            'teacher_id': teacher.id,
            'subject': 'Operating Systems',
            'content': 'Great explanations in class',
            'rating': 4,
            'status': FeedbackStatus.PENDING,
            'is_anonymous': False,
            'semester': 3,
            'academic_year': '2023-2024',
            'created_at': created_at,
            'updated_at': created_at,
        }
        fields.update(overrides)

        feedback = Feedback(**fields)
        db.add(feedback)
        db.commit()
        db.refresh(feedback)
        return feedback

    return _make_feedback


@pytest.fixture
def client(db):
    from backend.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {'Authorization': f'Bearer {create_access_token(user.id)}'}

    return _auth_headers
