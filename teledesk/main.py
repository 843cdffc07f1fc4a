import asyncio
import os
from typing import Awaitable, Callable, Optional

from fastapi import Depends, FastAPI

from teledesk.config import settings
from teledesk.logging_config import get_logger, setup_logging
from teledesk.routers import admin, slack_interactions, telegram_webhook
from teledesk.runtime import Runtime, build_runtime, get_runtime
from teledesk.storage import StorageError

setup_logging(settings.log_level, settings.deploy_env)

app = FastAPI(
    title="Teledesk",
    description="Telegram support desk bot with Zendesk tickets and Slack forwarding",
    version="0.1.0",
)

app.include_router(telegram_webhook.router)
app.include_router(slack_interactions.router)
app.include_router(admin.router)

app.state.runtime = build_runtime(settings)

worker_logger = get_logger("workers")
_worker_tasks: list[asyncio.Task] = []


def _background_tasks_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.background_tasks_enabled


async def _run_every(name: str, interval_seconds: float, step: Callable[[], Awaitable[None]]) -> None:
    """Run ``step`` forever at a fixed interval; failures are logged and the loop continues."""
    interval_seconds = max(interval_seconds, 0.1)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await step()
        except asyncio.CancelledError:
            break
        except Exception as exc:
            worker_logger.error(
                f"{name} loop failed",
                extra={"context": {"error": str(exc)}},
                exc_info=True,
            )


def _flush_step(runtime: Runtime) -> Callable[[], Awaitable[None]]:
    async def step() -> None:
        if runtime.store.dirty:
            runtime.store.persist()

    return step


def _poll_step(runtime: Runtime) -> Callable[[], Awaitable[None]]:
    async def step() -> None:
        resolved = await runtime.poller.poll_once()
        if resolved:
            worker_logger.info("Reaction poll resolved acknowledgments", extra={"context": {"resolved": resolved}})

    return step


def _sweep_step(runtime: Runtime) -> Callable[[], Awaitable[None]]:
    async def step() -> None:
        if runtime.store.sweep():
            runtime.store.persist()

    return step


@app.on_event("startup")
async def start_workers() -> None:
    runtime: Runtime = app.state.runtime
    runtime.store.restore()

    if not _background_tasks_enabled() or _worker_tasks:
        return
    _worker_tasks.extend(
        [
            asyncio.create_task(_run_every("Persistence", settings.persist_interval_seconds, _flush_step(runtime))),
            asyncio.create_task(_run_every("Reaction poll", settings.reaction_poll_interval_seconds, _poll_step(runtime))),
            asyncio.create_task(_run_every("Expiry sweep", settings.sweep_interval_seconds, _sweep_step(runtime))),
        ]
    )
    worker_logger.info("Background workers started")


@app.on_event("shutdown")
async def stop_workers() -> None:
    for task in _worker_tasks:
        task.cancel()
    for task in _worker_tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    _worker_tasks.clear()

    runtime: Optional[Runtime] = getattr(app.state, "runtime", None)
    if runtime is None:
        return
    try:
        runtime.store.persist()
        worker_logger.info("State flushed on shutdown")
    except StorageError as exc:
        worker_logger.error("Shutdown flush failed", extra={"context": {"error": str(exc)}})


@app.get("/health")
async def health(runtime: Runtime = Depends(get_runtime)):
    return {
        "status": "ok",
        "sessions": runtime.store.session_count(),
        "pending_acks": len(runtime.store.pending_acks()),
    }
