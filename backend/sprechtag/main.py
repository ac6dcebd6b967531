# backend/sprechtag/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .core.errors import BookingError
from .core.security import hash_password
from .database import Base, SessionLocal, engine

# every model module must be imported before create_all
from .models import booking_request, event, feedback, settings as settings_model, slot, teacher, user  # noqa: F401
from .models.user import Role, User
from .routers import admin as admin_router
from .routers import auth as auth_router
from .routers import public as public_router
from .routers import teacher as teacher_router
from .services.sweeper import AutoAssignSweeper

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Gmail client is chatty at INFO
logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


def ensure_admin() -> None:
    """Create the bootstrap admin from ADMIN_USERNAME / ADMIN_PASSWORD if missing."""
    if not settings.ADMIN_USERNAME or not settings.ADMIN_PASSWORD:
        return
    with SessionLocal() as db:
        if db.query(User).filter(User.username == settings.ADMIN_USERNAME).first():
            return
        db.add(User(
            username=settings.ADMIN_USERNAME,
            password_hash=hash_password(settings.ADMIN_PASSWORD),
            role=Role.ADMIN,
        ))
        db.commit()
        logger.info("bootstrap admin %s created", settings.ADMIN_USERNAME)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    Base.metadata.create_all(bind=engine, checkfirst=True)
    ensure_admin()

    sweeper = None
    if settings.AUTO_ASSIGN_ENABLED and settings.DB_URL.startswith("sqlite"):
        # one StaticPool connection for every thread; no background writer on it
        logger.warning("auto-assign sweep disabled: not supported on SQLite (%s)", settings.DB_URL)
    elif settings.AUTO_ASSIGN_ENABLED:
        sweeper = AutoAssignSweeper()
        sweeper.start()
    app.state.sweeper = sweeper

    yield

    if sweeper:
        await sweeper.stop()
    logger.info("Application shutting down...")


app = FastAPI(title="BKSB Elternsprechtag", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error rendering: {"error", "code", "details"?} everywhere ---
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    codes = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "code": codes.get(exc.status_code, "HTTP_ERROR")},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error for %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={
            "error": "Ungültige Eingabe",
            "code": "VALIDATION",
            "details": {"errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()
            ]},
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL"})


# --- API Routers ---
app.include_router(public_router.router)
app.include_router(auth_router.router)
app.include_router(teacher_router.router)
app.include_router(admin_router.router)


@app.get("/ping")
def ping():
    return {"ok": True}
