"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from marketplace_admin.config import settings
from marketplace_admin.context import OpsContext, build_context, get_context
from marketplace_admin.models import Base
from marketplace_admin.routes.jobs import router as jobs_router
from marketplace_admin.routes.operations import router as operations_router
from marketplace_admin.routes.queues import router as queues_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the process context and create tables on startup, dispose on shutdown."""
    owns_context = getattr(app.state, "ops", None) is None
    if owns_context:
        app.state.ops = build_context(settings)

    async with app.state.ops.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Operations API started")

    yield

    if owns_context:
        await app.state.ops.dispose()


def create_app(context: OpsContext | None = None) -> FastAPI:
    app = FastAPI(
        title="Experience Marketplace Admin API",
        version="1.0.0",
        description="Operations back-office API: job health, queues, schedules and circuit breakers.",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.ops = context

    # CORS
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health_check(ctx: OpsContext = Depends(get_context)):
        """Verify API and database connectivity."""
        try:
            async with ctx.session_factory() as db:
                await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        except Exception as e:
            return {"status": "error", "database": str(e)}

    app.include_router(operations_router)
    app.include_router(jobs_router)
    app.include_router(queues_router)
    return app


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("marketplace_admin.main:app", host="0.0.0.0", port=settings.API_PORT)
