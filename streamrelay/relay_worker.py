import asyncio
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Iterator, Optional, Set

import requests
from urllib3.exceptions import HTTPError as Urllib3HTTPError, ReadTimeoutError

from .config import (
    CONNECT_TIMEOUT_SEC,
    FALLBACK_CONTENT_TYPE,
    MAX_CONCURRENT_RELAYS,
    UPLOAD_BACKOFF_SEC,
    UPLOAD_MAX_ATTEMPTS,
    UPLOAD_MAX_BACKOFF_SEC,
    UPLOAD_TIMEOUT_SEC,
)
from .exceptions import (
    ConnectionReset,
    SourceFetchError,
    SourceTimeout,
    UploadError,
    UploadTimeout,
)
from .models import RelayRequest, ResolvedSource, TransferResult
from .notifier import WEBHOOK_EXECUTOR, notify_completion
from .retry import RetryPolicy, is_retryable_status, parse_retry_after
from .source import normalize_url, resolve_source
from .task_registry import TASKS, TaskRegistry

logger = logging.getLogger(__name__)

FILE_TYPE_CONTENT_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
}

# Strong references to in-flight relays so they are not garbage collected
_RUNNING: Set[asyncio.Task] = set()

# Relays hold a thread for the whole transfer, so they get their own pool
RELAY_EXECUTOR = ThreadPoolExecutor(
    max_workers=MAX_CONCURRENT_RELAYS, thread_name_prefix="relay"
)


def default_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=UPLOAD_MAX_ATTEMPTS,
        backoff_seconds=UPLOAD_BACKOFF_SEC,
        max_backoff=UPLOAD_MAX_BACKOFF_SEC,
    )


def resolve_content_type(file_type: Optional[str], source_type: Optional[str]) -> str:
    """Declared file type wins, then a video/* source type, then the fallback."""
    if file_type in FILE_TYPE_CONTENT_TYPES:
        return FILE_TYPE_CONTENT_TYPES[file_type]
    if source_type and source_type.startswith("video/"):
        return source_type
    return FALLBACK_CONTENT_TYPE


class StreamBody:
    """
    PUT body that pulls chunks from the source only as the socket accepts them.

    Defines __len__ only through the declared length so requests sends a
    Content-Length when it is known and falls back to chunked encoding when
    it is not.
    """

    def __init__(self, source: ResolvedSource):
        self.source = source
        self.sent = 0

    def __iter__(self) -> Iterator[bytes]:
        expected = self.source.content_length
        try:
            for chunk in self.source.stream:
                if not chunk:
                    continue
                self.sent += len(chunk)
                if expected is not None and self.sent > expected:
                    raise SourceFetchError(
                        f"Source sent more than the declared {expected} bytes"
                    )
                yield chunk
        except (ReadTimeoutError, TimeoutError) as e:
            raise SourceTimeout(f"Source stream timed out: {e}") from e
        except (Urllib3HTTPError, OSError) as e:
            raise SourceFetchError(f"Source stream interrupted: {e}") from e
        finally:
            self.source.close()

        if expected is not None and self.sent != expected:
            raise SourceFetchError(
                f"Source ended after {self.sent} of {expected} bytes"
            )


class SizedStreamBody(StreamBody):
    def __len__(self) -> int:
        return self.source.content_length


def _body_for(source: ResolvedSource):
    if source.content_length is None:
        return StreamBody(source)
    if source.content_length == 0:
        source.close()
        return b""
    return SizedStreamBody(source)


def _extract_video_id(response: requests.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError as e:
        logger.warning(f"Upload response is not JSON, no video id: {e}")
        return None
    if isinstance(payload, dict) and payload.get("id"):
        return str(payload["id"])
    logger.warning("Upload response carries no video id")
    return None


def _put(source: ResolvedSource, destination_url: str, content_type: str) -> TransferResult:
    logger.info(
        f"PUT {destination_url} Content-Type={content_type} "
        f"Content-Length={source.content_length if source.content_length is not None else 'chunked'}"
    )
    try:
        response = requests.put(
            destination_url,
            data=_body_for(source),
            headers={"Content-Type": content_type},
            timeout=(CONNECT_TIMEOUT_SEC, UPLOAD_TIMEOUT_SEC),
        )
    except requests.Timeout as e:
        raise UploadTimeout(f"Upload timeout: {e}") from e
    except requests.ConnectionError as e:
        raise ConnectionReset(f"Connection reset, please try again: {e}") from e
    except requests.RequestException as e:
        raise UploadError(f"Upload failed: {e}") from e
    finally:
        source.close()

    if not response.ok:
        error_text = response.text
        raise UploadError(
            f"Upload failed: {response.status_code} {error_text}",
            status=response.status_code,
            retryable=is_retryable_status(response.status_code),
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )

    logger.info(f"Upload accepted with status {response.status_code}")
    return TransferResult(video_id=_extract_video_id(response))


def transfer(
    source: ResolvedSource,
    destination_url: str,
    file_type: Optional[str] = None,
    reopen: Optional[Callable[[], ResolvedSource]] = None,
    policy: Optional[RetryPolicy] = None,
) -> TransferResult:
    """
    Stream a resolved source into a single PUT on the destination.

    The source can be read once, so attempts after the first need `reopen`
    to fetch it again. Without it the upload is tried exactly once.

    Raises:
        UploadError: destination rejected the upload
        UploadTimeout: destination did not answer in time
        ConnectionReset: destination dropped the connection
    """
    content_type = resolve_content_type(file_type, source.content_type)
    logger.info(f"Final upload Content-Type: {content_type}")

    policy = policy or default_policy()
    if reopen is None:
        policy = RetryPolicy(max_attempts=1)

    def attempt(number: int) -> TransferResult:
        current = source if number == 1 else reopen()
        return _put(current, destination_url, content_type)

    return policy.execute(attempt)


def relay(
    request: RelayRequest,
    on_upload_start: Optional[Callable[[], None]] = None,
    policy: Optional[RetryPolicy] = None,
) -> TransferResult:
    """Normalize, resolve and transfer one relay request. Blocking."""
    source_url = normalize_url(request.source_url)
    logger.info(f"Source URL: {source_url}")
    logger.info(f"Destination URL: {request.destination_url}")

    source = resolve_source(source_url)
    if on_upload_start is not None:
        on_upload_start()
    return transfer(
        source,
        request.destination_url,
        request.file_type,
        reopen=lambda: resolve_source(source_url),
        policy=policy,
    )


async def run_relay_task(task_id: str, request: RelayRequest,
                         registry: TaskRegistry = TASKS,
                         executor: Optional[Executor] = None) -> None:
    """Background unit of work: relay, record the outcome, notify."""
    loop = asyncio.get_running_loop()
    try:
        result = await loop.run_in_executor(
            executor or RELAY_EXECUTOR,
            relay, request, lambda: registry.mark_upload_started(task_id),
        )
    except Exception as e:
        logger.error(f"Relay failed for task {task_id}: {e}", exc_info=True)
        registry.mark_failed(task_id, str(e))
        return

    logger.info(f"Relay completed for task {task_id}, video id {result.video_id}")
    if registry.mark_completed(task_id, result.video_id) and result.video_id:
        await loop.run_in_executor(
            WEBHOOK_EXECUTOR, notify_completion, task_id, result.video_id
        )


def start_relay_task(task_id: str, request: RelayRequest,
                     registry: TaskRegistry = TASKS,
                     executor: Optional[Executor] = None) -> asyncio.Task:
    """Start a relay as a background task"""
    task = asyncio.create_task(run_relay_task(task_id, request, registry, executor))
    _RUNNING.add(task)
    task.add_done_callback(_RUNNING.discard)
    return task
