import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from conduit.config import settings
from conduit.database import engine
from conduit.exceptions import ServiceError
from conduit.middleware import TimingMiddleware, current_request_id
from conduit.routers import articles, metrics, profiles, tags, users

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Conduit API starting (env=%s)", settings.APP_ENV)
    yield
    await engine.dispose()


app = FastAPI(
    title="Conduit API",
    description="Articles with tags, favorites and a social follow graph",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.info("[%s] %s %s -> %s: %s", current_request_id(), request.method,
                request.url.path, exc.status_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"errors": {"body": [exc.message]}},
    )


# Routers
app.include_router(users.router)
app.include_router(profiles.router)
app.include_router(articles.router)
app.include_router(tags.router)
app.include_router(metrics.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
