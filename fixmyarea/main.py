"""
FixMyArea - Main Application
FastAPI backend for resident complaints and the stray dog registry
"""
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

# Load environment variables
load_dotenv()

from fixmyarea.config import settings
from fixmyarea.database import dispose_engine, get_session_factory, init_models
from fixmyarea.exceptions import FixMyAreaError
from fixmyarea.logging_config import generate_request_id, set_request_id, setup_logging
from fixmyarea.services.location_service import get_location_cache
from fixmyarea.utils.otp_service import OTPLedger

# Import routers
from fixmyarea.routes.auth import router as auth_router
from fixmyarea.routes.complaints import router as complaints_router
from fixmyarea.routes.dogs import router as dogs_router
from fixmyarea.routes.locations import router as locations_router
from fixmyarea.routes.otp import router as otp_router
from fixmyarea.routes.reports import router as reports_router
from fixmyarea.routes.users import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - create tables and purge stale OTPs on startup"""
    setup_logging()
    await init_models()
    logger.info("Database tables ready")

    async with get_session_factory()() as session:
        purged = await OTPLedger(session).purge_expired()
        await session.commit()
    logger.info("Purged %s expired OTPs", purged)

    if not settings.REQUIRE_VERIFICATION_TICKET:
        logger.warning(
            "REQUIRE_VERIFICATION_TICKET is off: registration trusts the client's OTP verification"
        )

    yield

    await get_location_cache().close()
    await dispose_engine()
    logger.info("Application shutdown")


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Civic complaint reporting and stray dog management",
    lifespan=lifespan,
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CORS_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ==================== ERROR HANDLERS ====================

@app.exception_handler(FixMyAreaError)
async def fixmyarea_error_handler(request: Request, exc: FixMyAreaError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"success": False, "message": "Validation failed", "errors": errors}),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# Include routers
app.include_router(otp_router)
app.include_router(auth_router)
app.include_router(complaints_router)
app.include_router(reports_router)
app.include_router(dogs_router)
app.include_router(users_router)
app.include_router(locations_router)

app.mount(settings.PUBLIC_UPLOAD_URL, StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


# ==================== HEALTH CHECK ====================

@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "status": "online",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/health")
async def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "services": {
            "auth": "active",
            "otp": "active",
            "complaints": "active",
            "dogs": "active",
        },
    }


# ==================== RUN SERVER ====================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fixmyarea.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
