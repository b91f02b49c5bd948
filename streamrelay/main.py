import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import COLD_START_SEC, CORS_ORIGINS
from .cleanup import cleanup_old_tasks, start_cleanup_worker
from .exceptions import MissingParameter, RelayError, TaskNotFound
from .models import HealthStatus, RelayRequest, Task, UploadAccepted
from .notifier import WebhookTestTimer
from .relay_worker import RELAY_EXECUTOR, relay, start_relay_task
from .task_registry import TASKS

logger = logging.getLogger(__name__)

SERVER_START_TIME = time.time()
WEBHOOK_TEST_TIMER = WebhookTestTimer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info("Starting cleanup worker...")
    cleanup_task = start_cleanup_worker(TASKS)

    yield
    # Cleanup on shutdown
    logger.info("Shutting down...")
    await WEBHOOK_TEST_TIMER.stop()
    cleanup_task.cancel()


# Create FastAPI app
app = FastAPI(
    title="Stream Relay",
    description="Relay Google Drive and Dropbox videos into pre-signed upload URLs",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    return PlainTextResponse(str(exc), status_code=exc.status_code)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@app.get("/", response_class=PlainTextResponse)
async def root():
    """Liveness check"""
    return "OK"


@app.get("/health", response_model=HealthStatus)
async def health():
    """Uptime report; flags a cold start right after the process launched"""
    now = time.time()
    uptime = int(now - SERVER_START_TIME)
    if uptime < COLD_START_SEC:
        status_msg = f"Cold start: server started {uptime}s ago, first requests may be slow"
    else:
        status_msg = f"Server running normally for {uptime}s"
    return HealthStatus(
        time=_iso(now),
        server_start_time=_iso(SERVER_START_TIME),
        uptime_sec=uptime,
        status_msg=status_msg,
    )


@app.get("/upload", status_code=202, response_model=UploadAccepted)
async def upload(
    drive_url: Optional[str] = Query(None, alias="driveUrl"),
    youtube_upload_url: Optional[str] = Query(None, alias="youtubeUploadUrl"),
    file_type: Optional[str] = Query(None, alias="fileType"),
    wait: bool = False,
):
    """Relay a source file into the upload URL, in the background unless wait=true"""
    if not drive_url or not youtube_upload_url:
        raise MissingParameter("Missing driveUrl or youtubeUploadUrl")

    request = RelayRequest(
        source_url=drive_url,
        destination_url=youtube_upload_url,
        file_type=file_type if file_type in ("mp4", "mov") else ("other" if file_type else None),
    )

    if wait:
        try:
            await asyncio.get_running_loop().run_in_executor(RELAY_EXECUTOR, relay, request)
        except RelayError:
            raise
        except Exception as e:
            logger.error(f"Upload failed: {e}", exc_info=True)
            return PlainTextResponse(f"Upload failed: {e}", status_code=500)
        return PlainTextResponse("Upload success", status_code=200)

    # Registered before the relay starts so the id is pollable immediately
    task_id = TASKS.create()
    start_relay_task(task_id, request, TASKS)
    logger.info(f"Relaying {drive_url} as task {task_id}")

    return UploadAccepted(task_id=task_id, message="Upload started, poll /status/{taskId}")


@app.get("/status/{task_id}", response_model=Task)
async def get_task_status(task_id: str):
    """Get the status of a relay task"""
    try:
        return TASKS.get(task_id)
    except TaskNotFound:
        return JSONResponse({"error": "Task not found"}, status_code=404)


@app.post("/test-webhook")
async def start_test_webhook():
    """Start posting synthetic completion payloads to the webhook"""
    started = await WEBHOOK_TEST_TIMER.start()
    message = "Webhook test timer started" if started else "Webhook test timer already running"
    return {"message": message, "running": True, "intervalSec": WEBHOOK_TEST_TIMER.interval}


@app.delete("/test-webhook")
async def stop_test_webhook():
    """Stop the webhook test timer"""
    await WEBHOOK_TEST_TIMER.stop()
    return {"message": "Webhook test timer stopped", "running": False}


@app.post("/cleanup")
async def manual_cleanup():
    """Manually evict finished tasks past their retention"""
    removed = cleanup_old_tasks(TASKS)
    return {"message": "Cleanup completed", "removed": removed, "activeTasks": len(TASKS)}


if __name__ == "__main__":
    import uvicorn
    from .config import HOST, PORT
    uvicorn.run(app, host=HOST, port=PORT)
