import logging

from fastapi import FastAPI

from app.core.config import LOG_LEVEL
from app.core.errors import register_exception_handlers
from app.core.logging_middleware import LoggingMiddleware
from app.db.init_db import init_db

# Import routers directly (bulletproof way)
from app.routers.assignments import router as assignments_router
from app.routers.auth import router as auth_router
from app.routers.enrollments import router as enrollments_router
from app.routers.groups import router as groups_router
from app.routers.sections import router as sections_router
from app.routers.self_service import router as self_service_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Section Groups")

# Middleware
app.add_middleware(LoggingMiddleware)

# Service errors -> JSON {"detail", "code"}
register_exception_handlers(app)


# Health check
@app.get("/health")
def health():
    return {"status": "ok"}


# Startup event
@app.on_event("startup")
def on_startup():
    init_db()


# Include routers
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(sections_router, prefix="/sections", tags=["sections"])
app.include_router(enrollments_router, prefix="/enrollments", tags=["enrollments"])
app.include_router(assignments_router, tags=["assignments"])

app.include_router(self_service_router, tags=["self-service"])
app.include_router(groups_router, tags=["groups"])
