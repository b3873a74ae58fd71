import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from tortoise.contrib.fastapi import RegisterTortoise

from roombooking import settings
from roombooking.routers.booking import router as booking_router

TORTOISE_MODULES = {"models": ["roombooking.models"]}


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with RegisterTortoise(
        app,
        db_url=settings.db_url,
        modules=TORTOISE_MODULES,
        generate_schemas=True,
        use_tz=True,
    ):
        logger.info("Database ready at {}", settings.db_url.split("@")[-1])
        yield


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Room Booking", lifespan=lifespan)
    app.include_router(booking_router)
    return app


app = create_app()
