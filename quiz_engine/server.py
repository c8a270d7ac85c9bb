import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from quiz_engine.db.database import init_db
from quiz_engine.errors import QuizEngineError, StoreUnavailable

logger = logging.getLogger(__name__)

# CORS: use CORS_ORIGINS env var (comma-separated) or sensible defaults.
_cors_env = os.environ.get("CORS_ORIGINS", "")
if _cors_env:
    _allowed_origins = [o.strip() for o in _cors_env.split(",") if o.strip()]
else:
    _allowed_origins = [
        "http://localhost:8000",
        "http://127.0.0.1:8000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="Adaptive Quiz Engine", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(QuizEngineError)
async def quiz_engine_error_handler(request: Request, exc: QuizEngineError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    headers = {"Retry-After": "1"} if isinstance(exc, StoreUnavailable) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# Import and register routes
from quiz_engine.routes.attempts import router as attempts_router
from quiz_engine.routes.analytics import router as analytics_router
from quiz_engine.routes.guest_quiz import router as guest_quiz_router

app.include_router(attempts_router)
app.include_router(analytics_router)
app.include_router(guest_quiz_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
