"""Redis-backed out-of-band signals for import jobs."""
from __future__ import annotations

import logging
from uuid import UUID

from redis import Redis
from redis.exceptions import RedisError

from catalog_import.core.config import get_settings

DEFAULT_CANCEL_TTL_SECONDS = 24 * 60 * 60
DEFAULT_NAMESPACE = "import_jobs"

logger = logging.getLogger(__name__)


def create_redis_client(url: str, *, decode_responses: bool = False) -> Redis:
    """Return a configured synchronous Redis client instance."""

    kwargs = {
        "decode_responses": decode_responses,
        "health_check_interval": 30,
        "socket_keepalive": True,
    }

    # Only include encoding parameter when decode_responses is True
    if decode_responses:
        kwargs["encoding"] = "utf-8"

    return Redis.from_url(url, **kwargs)


def get_redis_client(*, decode_responses: bool = False) -> Redis:
    """Return a Redis client configured from application settings.

    Convenience function that uses the Redis URL from settings to create
    a client instance. Useful for health checks and other non-dependency contexts.
    """
    settings = get_settings()
    return create_redis_client(settings.redis_url, decode_responses=decode_responses)


class CancellationFlags:
    """Cancellation requests for running jobs, keyed by job id.

    The HTTP layer raises a flag; the worker polls it between items. Flags
    expire on their own so abandoned requests do not accumulate.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        ttl_seconds: int = DEFAULT_CANCEL_TTL_SECONDS,
    ) -> None:
        self._redis = redis
        self._namespace = namespace
        self._ttl_seconds = ttl_seconds

    def _key(self, job_id: str | UUID) -> str:
        return f"{self._namespace}:cancel:{job_id}"

    def request(self, job_id: str | UUID) -> None:
        """Raise the cancellation flag. Errors propagate to the caller."""

        self._redis.set(self._key(job_id), "1", ex=self._ttl_seconds)

    def is_requested(self, job_id: str | UUID) -> bool:
        """Return True when cancellation was requested.

        An unreachable Redis reads as "not requested" so a flaky cache never
        fails an otherwise healthy import.
        """
        try:
            return bool(self._redis.exists(self._key(job_id)))
        except RedisError as exc:
            logger.warning(f"Could not read cancellation flag for job {job_id}: {exc}")
            return False

    def clear(self, job_id: str | UUID) -> None:
        try:
            self._redis.delete(self._key(job_id))
        except RedisError as exc:
            logger.warning(f"Could not clear cancellation flag for job {job_id}: {exc}")
