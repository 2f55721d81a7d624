"""Redis per-workflow save lock.

Key: workflow_router:save_lock:<workflow_id>   value: random owner token

The in-process busy flag of SyncEngine only covers one session object; this
lock keeps two API workers from reconciling the same workflow at once.

Fails open on Redis errors: saves proceed without the lock.
"""

import contextlib
import uuid
from collections.abc import AsyncIterator

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.metrics import save_lock_checks_total

logger = structlog.stdlib.get_logger(__name__)

SAVE_LOCK_KEY_PREFIX = "workflow_router:save_lock:"

# Delete only if we still own the key (it may have expired and been re-taken).
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class SaveLockHeld(Exception):
    """Raised when another worker is already saving the workflow."""

    def __init__(self, workflow_id: int):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} is being saved by another request")


class SaveLock:
    def __init__(self, redis: Redis, ttl: int | None = None):
        self._redis = redis
        self._ttl = ttl if ttl is not None else settings.redis.save_lock_ttl

    @contextlib.asynccontextmanager
    async def hold(self, workflow_id: int) -> AsyncIterator[None]:
        """Hold the lock for the duration of the block.

        Raises:
            SaveLockHeld: If another holder owns the lock.
        """
        key = f"{SAVE_LOCK_KEY_PREFIX}{workflow_id}"
        token = uuid.uuid4().hex

        try:
            acquired = await self._redis.set(key, token, nx=True, ex=self._ttl)
        except (RedisError, OSError):
            save_lock_checks_total.labels(status="error").inc()
            logger.warning("save_lock_unavailable", workflow_id=workflow_id, exc_info=True)
            redis_down = True
        else:
            redis_down = False

        if redis_down:
            yield
            return

        if not acquired:
            save_lock_checks_total.labels(status="rejected").inc()
            raise SaveLockHeld(workflow_id)

        save_lock_checks_total.labels(status="acquired").inc()
        try:
            yield
        finally:
            try:
                await self._redis.eval(_RELEASE_SCRIPT, 1, key, token)
            except (RedisError, OSError):
                # the TTL releases it eventually
                logger.warning("save_lock_release_failed", workflow_id=workflow_id, exc_info=True)
