import json
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.cycles.views import router as cycles_router
from config import settings
from coordination import CycleEventCoordinator
from core.log_config import configure_logging
from core.security import get_secret_key
from db import init_db


def get_cors_origins() -> list[str]:
    """Get CORS origins from environment variable or use defaults."""
    cors_env = os.environ.get("CORS_ORIGINS", "")

    # Try to parse as JSON array
    if cors_env:
        try:
            origins = json.loads(cors_env)
            if isinstance(origins, list):
                return origins
        except json.JSONDecodeError:
            # If not valid JSON, treat as comma-separated
            return [o.strip() for o in cors_env.split(",") if o.strip()]

    # Default origins for development
    return [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]


def create_coordinator() -> CycleEventCoordinator:
    return CycleEventCoordinator(
        debounce_seconds=settings.EVENT_DEBOUNCE_SECONDS,
        duplicate_window_seconds=settings.EVENT_DUPLICATE_WINDOW_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    # Refuse to serve without a signing key where one is required
    get_secret_key()
    if settings.APP_ENV == "local":
        await init_db()
    yield
    app.state.coordinator.reset()


app = FastAPI(
    title="Academic Cycle API",
    description="API for managing the lifecycle of academic cycles",
    version="1.0.0",
    lifespan=lifespan,
)

# One coordinator per application; every request shares it
app.state.coordinator = create_coordinator()

# Get CORS origins from environment or use defaults
cors_origins = get_cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Business endpoints
app.include_router(cycles_router, prefix="/api/v1")


# Health check endpoint
@app.get("/health", tags=["system"])
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
