import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from companion_app.core.config import settings
from companion_app.core.logging_config import setup_logging

setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
logger = logging.getLogger(__name__)

from companion_app.core.exceptions import CompanionAppError, QuotaExceeded
from companion_app.database import engine
from companion_app.models import Base
from companion_app.routers import categories, chat, companions, usage, webhooks

Base.metadata.create_all(bind=engine)
app = FastAPI(title=settings.APP_NAME)

@app.exception_handler(CompanionAppError)
async def companion_app_error_handler(request: Request, exc: CompanionAppError):
    """Maps the service's error taxonomy onto HTTP responses."""
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.context}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.http_status} {exc.error_code}")
    headers = {}
    if isinstance(exc, QuotaExceeded):
        headers["Retry-After"] = exc.reset_at.strftime("%a, %d %b %Y %H:%M:%S GMT")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)

app.include_router(categories.router)
app.include_router(companions.router)
app.include_router(chat.router)
app.include_router(usage.router)
app.include_router(webhooks.router)

@app.get("/")
async def root():
    return {"message": "Hello, Companion Chat API here!"}
