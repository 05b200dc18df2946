"""Per-dataroom indexing queue and worker lock."""

import json
import time
import uuid
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ...infrastructure.logging import get_logger
from ...infrastructure.redis import KeyValueStore, ParsedValue, RawValue, StoredValue
from ..common.constants import LOCK_KEY_PREFIX, QUEUE_KEY_PREFIX
from ..common.exceptions import IndexingError, IndexingErrorKind, ValidationError
from .schemas import IndexingRequest

logger = get_logger(__name__)

DEFAULT_LOCK_TTL_SECONDS = 60 * 60
DEFAULT_QUEUE_TTL_SECONDS = 60 * 60


def lock_key(dataroom_id: str) -> str:
    return f"{LOCK_KEY_PREFIX}{dataroom_id}"


def queue_key(dataroom_id: str) -> str:
    return f"{QUEUE_KEY_PREFIX}{dataroom_id}"


def generate_request_id(dataroom_id: str, team_id: str) -> str:
    return f"{dataroom_id}_{team_id}_{uuid.uuid4()}"


def decode_request(value: StoredValue) -> IndexingRequest:
    """Normalize a stored queue member into an ``IndexingRequest``.

    Raises:
        ValueError: If the member is not a valid request
    """
    if isinstance(value, RawValue):
        record = json.loads(value.text)
    elif isinstance(value, ParsedValue):
        record = value.record
    else:
        raise ValueError(f"Unsupported queue member: {value!r}")
    try:
        return IndexingRequest.model_validate(record)
    except PydanticValidationError as e:
        raise ValueError(f"Invalid queued request: {e}") from e


def member_text(value: StoredValue) -> str:
    """The exact member string to remove from the sorted set.

    Parsed records are re-serialized the way ``add_to_queue`` stored them.
    """
    if isinstance(value, RawValue):
        return value.text
    try:
        return decode_request(value).to_member()
    except ValueError:
        return value.serialize()


def _validate_dataroom_id(dataroom_id: str, operation: str) -> None:
    if not dataroom_id or not isinstance(dataroom_id, str):
        raise ValidationError("Invalid dataroom_id: must be a non-empty string", field="dataroom_id", operation=operation)


class RAGQueueManager:
    """FIFO queue of indexing requests and the worker lock, per dataroom.

    The lock key holds the acquisition time and expires after ``lock_ttl``
    seconds; its existence means a worker is active for the dataroom. The
    queue is a sorted set scored by request timestamp whose expiry is
    refreshed on every enqueue. Both expiries bound what a crashed worker can
    leave behind: once the lock lapses, the next trigger acquires it and
    drains whatever is still queued.

    Introspection reads and lock release never raise; they log and return a
    safe default.
    """

    def __init__(
        self,
        store: KeyValueStore,
        lock_ttl: int = DEFAULT_LOCK_TTL_SECONDS,
        queue_ttl: int = DEFAULT_QUEUE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.lock_ttl = lock_ttl
        self.queue_ttl = queue_ttl
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def add_to_queue(self, dataroom_id: str, team_id: str, user_id: str) -> IndexingRequest:
        """Enqueue a request to index ``dataroom_id``.

        Every call enqueues a new request with a fresh ``request_id``; an
        exact ``request_id`` already in the queue is skipped.

        Raises:
            ValidationError: If an identifier is missing
            IndexingError: ``external_service`` kind, if the store fails
        """
        _validate_dataroom_id(dataroom_id, "add_to_queue")
        if not team_id or not user_id:
            raise ValidationError("Invalid request: team_id and user_id are required", field="request", operation="add_to_queue")

        request = IndexingRequest(
            dataroom_id=dataroom_id,
            team_id=team_id,
            user_id=user_id,
            timestamp=self._now_ms(),
            request_id=generate_request_id(dataroom_id, team_id),
        )
        key = queue_key(dataroom_id)

        try:
            existing = await self.store.zrange(key, 0, -1)
            for value in existing:
                try:
                    queued = decode_request(value)
                except ValueError:
                    continue
                if queued.request_id == request.request_id:
                    logger.info(
                        "Duplicate request detected, skipping",
                        extra={"dataroom_id": dataroom_id, "request_id": request.request_id},
                    )
                    return queued

            await self.store.zadd(key, request.timestamp, request.to_member())
            await self.store.expire(key, self.queue_ttl)
        except IndexingError as e:
            logger.error(f"Failed to add to queue: {e}", extra={"dataroom_id": dataroom_id})
            raise IndexingError.wrap(e, e.kind, "add_to_queue", dataroom_id=dataroom_id, team_id=team_id)
        except Exception as e:
            logger.error(f"Failed to add to queue: {e}", extra={"dataroom_id": dataroom_id})
            raise IndexingError.wrap(
                e, IndexingErrorKind.EXTERNAL_SERVICE, "add_to_queue", dataroom_id=dataroom_id, team_id=team_id
            ) from e

        logger.info(
            "Added to queue",
            extra={"dataroom_id": dataroom_id, "request_id": request.request_id, "queue_length": len(existing) + 1},
        )
        return request

    async def get_next_from_queue(self, dataroom_id: str) -> Optional[IndexingRequest]:
        """Remove and return the oldest request, or None if the queue is empty.

        Members that cannot be decoded are dropped from the queue so they do
        not block it. A member that cannot be removed is skipped and left to
        the queue TTL.
        """
        _validate_dataroom_id(dataroom_id, "get_next_from_queue")
        key = queue_key(dataroom_id)
        position = 0

        try:
            while True:
                head = await self.store.zrange(key, position, position)
                if not head:
                    return None

                value = head[0]
                removed = await self.store.zrem(key, member_text(value))
                if not removed:
                    logger.warning(
                        "Queue entry could not be removed, skipping", extra={"dataroom_id": dataroom_id, "position": position}
                    )
                    position += 1
                    continue

                try:
                    return decode_request(value)
                except ValueError as e:
                    logger.error(f"Dropping unreadable queue entry: {e}", extra={"dataroom_id": dataroom_id})
        except Exception as e:
            logger.error(f"Failed to get next from queue: {e}", extra={"dataroom_id": dataroom_id})
            return None

    async def get_queue_length(self, dataroom_id: str) -> int:
        _validate_dataroom_id(dataroom_id, "get_queue_length")
        try:
            return await self.store.zcard(queue_key(dataroom_id))
        except Exception as e:
            logger.error(f"Failed to get queue length: {e}", extra={"dataroom_id": dataroom_id})
            return 0

    async def has_pending_requests(self, dataroom_id: str) -> bool:
        return await self.get_queue_length(dataroom_id) > 0

    async def get_pending_requests(self, dataroom_id: str) -> List[IndexingRequest]:
        _validate_dataroom_id(dataroom_id, "get_pending_requests")
        try:
            values = await self.store.zrange(queue_key(dataroom_id), 0, -1)
        except Exception as e:
            logger.error(f"Failed to get pending requests: {e}", extra={"dataroom_id": dataroom_id})
            return []

        requests = []
        for value in values:
            try:
                requests.append(decode_request(value))
            except ValueError as e:
                logger.warning(f"Skipping unreadable queue entry: {e}", extra={"dataroom_id": dataroom_id})
        return requests

    async def try_start_worker(self, dataroom_id: str) -> bool:
        """Acquire the dataroom's worker lock.

        Returns:
            True if this call acquired the lock and must run the worker
        """
        _validate_dataroom_id(dataroom_id, "try_start_worker")
        try:
            acquired = await self.store.set(
                lock_key(dataroom_id), str(self._now_ms()), if_not_exists=True, ttl_seconds=self.lock_ttl
            )
        except Exception as e:
            logger.error(f"Failed to acquire lock: {e}", extra={"dataroom_id": dataroom_id})
            return False

        if acquired:
            logger.info("Lock acquired", extra={"dataroom_id": dataroom_id})
        else:
            logger.info("Worker already running", extra={"dataroom_id": dataroom_id})
        return acquired

    async def is_indexing_running(self, dataroom_id: str) -> bool:
        _validate_dataroom_id(dataroom_id, "is_indexing_running")
        try:
            return await self.store.exists(lock_key(dataroom_id))
        except Exception as e:
            logger.error(f"Failed to check lock: {e}", extra={"dataroom_id": dataroom_id})
            return False

    async def release_lock(self, dataroom_id: str) -> None:
        _validate_dataroom_id(dataroom_id, "release_lock")
        try:
            await self.store.delete(lock_key(dataroom_id))
            logger.info("Lock released", extra={"dataroom_id": dataroom_id})
        except Exception as e:
            logger.error(f"Failed to release lock: {e}", extra={"dataroom_id": dataroom_id})
