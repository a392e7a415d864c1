import uvicorn
from fastapi import FastAPI

from campus_rewards.api.routes.health import router as health_router
from campus_rewards.api.routes.internal_points import router as internal_points_router
from campus_rewards.api.routes.internal_redemptions import router as internal_redemptions_router
from campus_rewards.core.config import get_settings
from campus_rewards.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.app_env != "dev")

    app = FastAPI(
        title="Campus Rewards API",
        version="0.1.0",
        docs_url="/docs" if settings.app_env == "dev" else None,
        redoc_url=None,
    )
    app.include_router(health_router)
    app.include_router(internal_redemptions_router)
    app.include_router(internal_points_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "campus_rewards.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
