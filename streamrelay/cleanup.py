import asyncio
import logging
from typing import Optional

from .config import CLEANUP_INTERVAL_SEC, TASK_RETENTION_SEC
from .task_registry import TASKS, TaskRegistry

logger = logging.getLogger(__name__)


async def cleanup_worker(registry: TaskRegistry = TASKS):
    """Background worker to evict finished tasks past their retention"""
    while True:
        try:
            cleanup_old_tasks(registry)
            await asyncio.sleep(CLEANUP_INTERVAL_SEC)
        except Exception as e:
            logger.error(f"Error in cleanup worker: {str(e)}")
            await asyncio.sleep(60)  # Wait 1 minute before retry on error


def cleanup_old_tasks(registry: TaskRegistry = TASKS,
                      max_age_sec: Optional[float] = None) -> int:
    """Remove completed and failed tasks older than the retention window"""
    removed = registry.evict_older_than(
        TASK_RETENTION_SEC if max_age_sec is None else max_age_sec
    )
    if removed > 0:
        logger.info(f"Cleanup completed: {removed} tasks removed")
    return removed


def start_cleanup_worker(registry: TaskRegistry = TASKS) -> asyncio.Task:
    """Start the cleanup worker as a background task"""
    return asyncio.create_task(cleanup_worker(registry))
