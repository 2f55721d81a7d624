"""Tests for the Redis per-workflow save lock.

Run: pytest backend/tests/services/test_save_lock.py -v
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.save_lock import SAVE_LOCK_KEY_PREFIX, SaveLock, SaveLockHeld


class TestSaveLock:
    @pytest.mark.asyncio
    async def test_acquire_and_release(self, mock_redis):
        lock = SaveLock(mock_redis, ttl=30)
        async with lock.hold(12):
            pass

        args, kwargs = mock_redis.set.call_args
        assert args[0] == f"{SAVE_LOCK_KEY_PREFIX}12"
        assert kwargs == {"nx": True, "ex": 30}
        token = args[1]

        eval_args = mock_redis.eval.call_args.args
        assert eval_args[1:] == (1, f"{SAVE_LOCK_KEY_PREFIX}12", token)

    @pytest.mark.asyncio
    async def test_released_when_body_raises(self, mock_redis):
        lock = SaveLock(mock_redis, ttl=30)
        with pytest.raises(RuntimeError):
            async with lock.hold(1):
                raise RuntimeError("boom")
        mock_redis.eval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_held_lock_rejects(self, mock_redis):
        mock_redis.set.return_value = None
        lock = SaveLock(mock_redis, ttl=30)
        entered = False
        with pytest.raises(SaveLockHeld) as exc_info:
            async with lock.hold(4):
                entered = True
        assert not entered
        assert exc_info.value.workflow_id == 4
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_fails_open_when_redis_is_down(self, mock_redis):
        mock_redis.set.side_effect = RedisConnectionError("down")
        lock = SaveLock(mock_redis, ttl=30)
        entered = False
        async with lock.hold(4):
            entered = True
        assert entered
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_release_error_is_not_raised(self, mock_redis):
        mock_redis.eval.side_effect = RedisConnectionError("down")
        lock = SaveLock(mock_redis, ttl=30)
        async with lock.hold(4):
            pass
