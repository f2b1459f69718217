"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import Base, engine
from app.services.errors import RegistryError

# Import routers
from app.routers import events, attendees, family_members

# Import all models so Base.metadata knows about them
from app.models.event import Event                          # noqa: F401
from app.models.attendee import Attendee                    # noqa: F401
from app.models.family_member import FamilyMember           # noqa: F401
from app.models.attendee_mutation import AttendeeMutation   # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Family RSVP",
    description="Event RSVPs for families with capacity limits, waitlists and family-member attendees",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(attendees.router, prefix="/api/events/{event_id}/attendees", tags=["Attendees"])
app.include_router(family_members.router, prefix="/api/users/{user_id}/family-members", tags=["FamilyMembers"])


@app.exception_handler(RegistryError)
async def handle_registry_error(request: Request, exc: RegistryError):
    """Rule violations carry their own status and a user-facing message."""
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.exception_handler(SQLAlchemyError)
async def handle_store_error(request: Request, exc: SQLAlchemyError):
    """Storage failures are reported as retryable, not as rule violations."""
    logger.exception("Store failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=503,
        content={"detail": {"kind": "StoreUnavailable", "message": "Temporary storage failure, please retry."}},
    )


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
