from fastapi import FastAPI
from dispatch_app.routes.dispatch_router import dispatch_router
from dispatch_app.routes.draft_router import draft_router
from contextlib import asynccontextmanager
from dispatch_app.core.config import settings
from dispatch_app.core.logger import get_logger
from dispatch_app.core.middleware import log_requests
from fastapi.middleware.cors import CORSMiddleware

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):

    logger.info(f"{settings.app_name} started, backend at {settings.BACKEND_BASE_URL}")
    if not settings.OPENROUTESERVICE_API_KEY:
        logger.warning("OPENROUTESERVICE_API_KEY is not set, route estimates will be unavailable")

    yield

    logger.info(f"{settings.app_name} shutting down")

app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(log_requests)
app.include_router(dispatch_router)
app.include_router(draft_router)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.app_name}
