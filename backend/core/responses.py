from typing import Any


def success(data: Any = None, **extra: Any) -> dict:
    body = {'success': True, 'data': data}
    body.update(extra)
    return body


def failure(message: str) -> dict:
    return {'success': False, 'message': message}
