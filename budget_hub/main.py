from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import structlog

from .config import settings
from .db import Base, engine, SessionLocal
from .errors import install_error_handlers
from .logging import setup_logging, RequestIdMiddleware
from .seed import seed_role_permissions
from .auth.router import router as auth_router
from .routes.admin import router as admin_router
from .routes.analytics import router as analytics_router
from .routes.budget_categories import router as budget_categories_router
from .routes.budget_versions import router as budget_versions_router
from .routes.business_units import router as business_units_router
from .routes.expenses import router as expenses_router
from .routes.notifications import router as notifications_router
from .routes.project_admin import router as project_admin_router
from .routes.project_milestones import router as project_milestones_router
from .routes.project_teams import router as project_teams_router
from .routes.projects import router as projects_router
from .routes.teams import router as teams_router
from .routes.users import router as users_router


log = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url] if settings.client_url else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    install_error_handlers(app)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(projects_router)
    app.include_router(expenses_router)
    app.include_router(budget_categories_router)
    app.include_router(budget_versions_router)
    app.include_router(business_units_router)
    app.include_router(project_milestones_router)
    app.include_router(project_teams_router)
    app.include_router(teams_router)
    app.include_router(project_admin_router)
    app.include_router(notifications_router)
    app.include_router(admin_router)
    app.include_router(analytics_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "OK", "service": settings.app_name}

    @app.on_event("startup")
    def _startup():
        if not settings.auto_create_db:
            return
        Base.metadata.create_all(bind=engine)
        db = SessionLocal()
        try:
            seed_role_permissions(db)
        finally:
            db.close()
        log.info("startup_complete", database=engine.url.render_as_string(hide_password=True))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("budget_hub.main:app", host=settings.host, port=settings.port)
