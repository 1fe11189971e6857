from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core.errors import Unauthorized
from backend.database import get_db, run_with_retries
from backend.models.user import User

security = HTTPBearer(auto_error=False)

TOKEN_COOKIE_NAME = "token"


def extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(TOKEN_COOKIE_NAME)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = extract_token(request, credentials)
    if not token:
        raise Unauthorized()

    user_id = jwt_handler.resolve_token(token)
    user = run_with_retries(lambda: db.get(User, user_id), db=db)
    if user is None:
        raise Unauthorized("User not found")
    if not user.is_active:
        raise Unauthorized("User account is deactivated")
    return user
