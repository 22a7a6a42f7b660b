import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, settings as default_settings
from app.core.database import Database
from app.core.error_handlers import setup_exception_handlers
from app.core.security import Security
from app.routes.categories import router as categories_router
from app.routes.health import router as health_router
from app.routes.items import router as items_router
from app.routes.movements import router as movements_router
from app.routes.reports import router as reports_router
from app.routes.suppliers import router as suppliers_router
from app.routes.users import router as users_router
from app.services.blob_store import BlobStore, CloudinaryBlobStore
from app.services.seed import seed_demo


logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    blob_store: Optional[BlobStore] = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database(settings)
        app.state.database = db
        app.state.blob_store = blob_store or CloudinaryBlobStore(settings)
        if settings.env in ("dev", "test"):
            db.create_all()
        if settings.seed_demo:
            with db.session() as session:
                seed_demo(session, app.state.security)
        logger.info("inventory API started (env=%s)", settings.env)
        try:
            yield
        finally:
            # Injected databases belong to the caller
            if database is None:
                db.dispose()

    app = FastAPI(title="Inventario API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.security = Security(settings)

    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    setup_exception_handlers(app)

    @app.get("/", tags=["health"])
    def root():
        return {"service": "Inventario API", "status": "running"}

    app.include_router(health_router, tags=["health"])
    app.include_router(items_router, prefix="/items", tags=["items"])
    app.include_router(categories_router, prefix="/categories", tags=["categories"])
    app.include_router(suppliers_router, prefix="/suppliers", tags=["suppliers"])
    app.include_router(users_router, prefix="/users", tags=["users"])
    app.include_router(movements_router, prefix="/movements", tags=["movements"])
    app.include_router(reports_router, prefix="/reports", tags=["reports"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=default_settings.port)
