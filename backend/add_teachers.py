"""Seed a handful of teacher accounts for local development.

Run with ``python -m backend.add_teachers``. Existing e-mail addresses are
skipped, so the script can be re-run safely.
"""

import logging

from backend.auth.passwords import hash_password
from backend.database import Base, SessionLocal, engine
from backend.models.user import Role, User

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = 'password123'

SAMPLE_TEACHERS = [
    {'username': 'john.smith', 'email': 'john.smith@university.edu', 'first_name': 'John', 'last_name': 'Smith'},
    {'username': 'mary.johnson', 'email': 'mary.johnson@university.edu', 'first_name': 'Mary', 'last_name': 'Johnson'},
    {'username': 'david.lee', 'email': 'david.lee@university.edu', 'first_name': 'David', 'last_name': 'Lee'},
    {'username': 'sarah.wilson', 'email': 'sarah.wilson@university.edu', 'first_name': 'Sarah', 'last_name': 'Wilson'},
]


def add_teachers(db, teachers=SAMPLE_TEACHERS, department: str = 'Computer Science') -> list[User]:
    created = []
    for teacher in teachers:
        if db.query(User).filter(User.email == teacher['email']).first() is not None:
            logger.info('Teacher %s already exists, skipping', teacher['email'])
            continue
        user = User(
            username=teacher['username'],
            email=teacher['email'],
            hashed_password=hash_password(DEFAULT_PASSWORD),
            role=Role.TEACHER,
            first_name=teacher['first_name'],
            last_name=teacher['last_name'],
            department=department,
            is_active=True,
        )
        db.add(user)
        created.append(user)
    db.commit()
    return created


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        for created_teacher in add_teachers(session):
            logger.info('Created teacher %s', created_teacher.email)
    finally:
        session.close()
