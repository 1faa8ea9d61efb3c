from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ujian.config import settings
from ujian.database import StorageBackend
from ujian.errors import UjianError
from ujian.logging_config import configure_logging
from ujian.routes import auth, classes, exams, realtime, submissions, users
from ujian.routes import settings as settings_routes
from ujian.services.users import UserAdmin
from ujian.storage import Gateway
from ujian.utils import utcnow

logger = configure_logging(settings.log_level)


def create_app(backend: Optional[StorageBackend] = None) -> FastAPI:
    """Build the API. Tests pass their own backend; otherwise one is made from config."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        debug=settings.debug
    )
    app.state.backend = backend or StorageBackend(settings.database_url, settings.local_data_dir)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(UjianError)
    async def handle_ujian_error(request: Request, exc: UjianError):
        level = logger.error if exc.status_code >= 500 else logger.warning
        level("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.on_event("startup")
    def startup_event():
        """Pick the storage mode and make sure an owner account exists"""
        storage = app.state.backend
        if not storage.bootstrapped:
            storage.connect()

        created = UserAdmin(Gateway(storage)).ensure_owner(
            settings.bootstrap_owner_username, settings.bootstrap_owner_password
        )
        if created:
            logger.info("👑 Bootstrap owner %s created", settings.bootstrap_owner_username)

        logger.info("🚀 %s is starting...", settings.app_name)
        logger.info("📚 Storage mode: %s", storage.mode.value)
        logger.info("🤖 AI grading: %s", "configured" if settings.gemini_api_key else "fallback only")

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.backend.close()

    @app.get("/")
    def root():
        """Root endpoint"""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.api_version,
            "status": "running"
        }

    @app.get("/api/health")
    def health_check():
        """Health check endpoint"""
        return {
            "status": "ok",
            "storage_mode": app.state.backend.mode.value,
            "timestamp": utcnow().isoformat(),
        }

    app.include_router(auth.router, prefix="/api/auth")
    app.include_router(classes.router, prefix="/api/classes")
    app.include_router(exams.router, prefix="/api/exams")
    app.include_router(submissions.router, prefix="/api/submissions")
    app.include_router(users.router, prefix="/api/users")
    app.include_router(settings_routes.router, prefix="/api/settings")
    app.include_router(realtime.router, prefix="/api/realtime")
    return app


app = create_app()
