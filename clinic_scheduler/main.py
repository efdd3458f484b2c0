from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from clinic_scheduler.api.api import api_router
from clinic_scheduler.core.config import settings
from clinic_scheduler.core.exceptions import (
    DataIntegrityError,
    InvalidTransitionError,
    NotFoundError,
    StorageTimeout,
)
from clinic_scheduler.core.logger import logger
from clinic_scheduler.core.redis import redis_client
from clinic_scheduler.db.session import init_db
from clinic_scheduler.middleware.log_middleware import LogMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    await init_db()
    try:
        await redis_client.ping()
        logger.info("Redis connection established")
    except RedisError as e:
        logger.warning(f"Redis is not reachable, logins will fail until it is: {e}")
    yield
    await redis_client.close()
    logger.info("Application shutting down...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LogMiddleware)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(DataIntegrityError)
async def data_integrity_handler(request: Request, exc: DataIntegrityError):
    logger.error(f"Broken scheduling data behind {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Doctor schedule data is inconsistent"})


@app.exception_handler(StorageTimeout)
async def storage_timeout_handler(request: Request, exc: StorageTimeout):
    logger.warning(f"Storage timeout on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Scheduling storage is not responding, try again"})


@app.get("/")
async def root():
    return {"message": "Welcome to Clinic Scheduler API"}


app.include_router(api_router, prefix=settings.API_V1_STR)
