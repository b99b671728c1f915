"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.request_size import RequestSizeLimitMiddleware
from app.api.responses import register_exception_handlers
from app.api.v1 import router as v1_router
from app.core.config import settings
from app.core.logging_setup import configure_logging

configure_logging(settings)

app = FastAPI(
    title="Homescreen Config API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

register_exception_handlers(app)

# Cookie auth relies on SameSite=Strict; only open CORS in development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# Added last so it runs first, before any body is read.
app.add_middleware(RequestSizeLimitMiddleware, settings=settings)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Homescreen Config API"}
