import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatrelay.config import settings
from chatrelay.logging_config import get_logger, setup_logging
from chatrelay.routers import admin, handoff, webhook
from chatrelay.runtime import get_runtime

setup_logging("DEBUG" if settings.debug else "INFO")

logger = get_logger("main")

app = FastAPI(
    title="ChatRelay API",
    description="WhatsApp conversation orchestrator",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(handoff.router)
app.include_router(admin.router)


def _is_dispatch_worker_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.dispatch_worker_enabled


@app.on_event("startup")
async def start_background_work() -> None:
    runtime = get_runtime()
    loaded = runtime.reload_configuration()
    logger.info("Configuration loaded", extra={"context": loaded})
    if not _is_dispatch_worker_enabled():
        return
    runtime.dispatcher.start()


@app.on_event("shutdown")
async def stop_background_work() -> None:
    await get_runtime().dispatcher.stop()


@app.get("/health")
async def health():
    return {"status": "ok"}
