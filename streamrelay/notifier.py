"""Completion webhook and the diagnostic webhook test timer."""
import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import requests

from .config import TEST_WEBHOOK_INTERVAL_SEC, WEBHOOK_TIMEOUT_SEC, WEBHOOK_URL, WEBHOOK_WORKERS

logger = logging.getLogger(__name__)

WEBHOOK_EXECUTOR = ThreadPoolExecutor(max_workers=WEBHOOK_WORKERS, thread_name_prefix="webhook")


def _post(url: str, payload: dict) -> None:
    response = requests.post(url, json=payload, timeout=WEBHOOK_TIMEOUT_SEC)
    response.raise_for_status()


def notify_completion(task_id: str, video_id: Optional[str],
                      webhook_url: Optional[str] = None) -> None:
    """
    Tell the downstream webhook a task finished. Never raises.

    The task's terminal status is already recorded, so a failed delivery is
    only logged.
    """
    url = webhook_url or WEBHOOK_URL
    if not url:
        logger.info(f"No WEBHOOK_URL configured, skipping notification for task {task_id}")
        return
    if not video_id:
        logger.info(f"Task {task_id} has no video id, skipping notification")
        return

    payload = {"videoId": video_id, "taskId": task_id, "status": "completed"}
    try:
        _post(url, payload)
        logger.info(f"Webhook notified for task {task_id}")
    except requests.RequestException as e:
        logger.error(f"Webhook notification failed for task {task_id}: {e}")


class WebhookTestTimer:
    """Posts synthetic completion payloads on an interval until stopped."""

    def __init__(self, interval: float = TEST_WEBHOOK_INTERVAL_SEC,
                 webhook_url: Optional[str] = None):
        self.interval = interval
        self.webhook_url = webhook_url
        self.sent = 0
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> bool:
        """Start the timer. Returns False when it was already running."""
        async with self._lock:
            if self.running:
                return False
            self._task = asyncio.create_task(self._run())
            logger.info(f"Webhook test timer started, every {self.interval}s")
            return True

    async def stop(self) -> None:
        async with self._lock:
            if self._task is None:
                return
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Webhook test timer stopped")

    async def _run(self):
        while True:
            await self.send_once()
            await asyncio.sleep(self.interval)

    async def send_once(self) -> None:
        url = self.webhook_url or WEBHOOK_URL
        if not url:
            logger.warning("No WEBHOOK_URL configured, test payload not sent")
            return
        self.sent += 1
        payload = {
            "videoId": f"test-{self.sent}",
            "taskId": f"test-{int(time.time() * 1000)}",
            "status": "completed",
        }
        try:
            await asyncio.get_running_loop().run_in_executor(WEBHOOK_EXECUTOR, _post, url, payload)
            logger.info(f"Test webhook sent: {payload}")
        except requests.RequestException as e:
            # Test deliveries are diagnostic only
            logger.warning(f"Test webhook failed: {e}")
