import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from backend.core.config import settings, validate_runtime_config
from backend.core.responses import failure
from backend.database import Base, engine, ensure_feedback_schema
from backend.models import feedback, user  # noqa: F401
from backend.routes import auth_routes, feedback_routes

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)

logger = logging.getLogger(__name__)

validate_runtime_config()

app = FastAPI(title='Student Feedback API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
    allow_headers=['Content-Type', 'Authorization'],
)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_feedback_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=failure(str(exc.detail)),
        headers=getattr(exc, 'headers', None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        field = '.'.join(str(loc) for loc in error['loc'] if loc not in ('body', 'query', 'path'))
        message = error['msg'].removeprefix('Value error, ')
        messages.append(f'{field}: {message}' if field else message)
    return JSONResponse(status_code=400, content=failure('. '.join(messages)))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception('Database error on %s %s', request.method, request.url.path)
    return JSONResponse(status_code=500, content=failure('Database error'))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(status_code=500, content=failure('Internal server error'))


@app.get('/health')
def health():
    return {'status': 'ok'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(feedback_routes.router, prefix='/feedback')
