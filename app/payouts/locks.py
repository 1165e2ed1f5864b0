"""
Redis locks serializing payout runs per payee.

The balance row locks taken by BalanceAggregator are the correctness
guard. The payee lock only keeps a manual admin payout and the scheduled
run from building competing payments for the same payee at the same time.

Usage:
    from payouts.locks import payee_payout_lock

    with payee_payout_lock(payee.id):
        balances = BalanceAggregator.lock_and_mark_processing(payee, cutoff, processor)
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from django.conf import settings

from django_redis import get_redis_connection

from payouts.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


class DistributedLock:
    """
    Redis-based lock with TTL and token ownership.

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds before the lock auto-expires
        blocking: Wait for the lock instead of failing immediately
        timeout: Maximum wait in seconds when blocking

    Raises:
        LockAcquisitionError: On entry, if the lock could not be taken
    """

    # Delete only if we still own the key
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 300,
        blocking: bool = False,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        self._token = str(uuid.uuid4())
        deadline = time.time() + (self.timeout if self.blocking else 0)

        while True:
            if self.redis.set(self.key, self._token, nx=True, ex=self.ttl):
                return True
            if time.time() >= deadline:
                break
            time.sleep(0.05)

        self._token = None
        raise LockAcquisitionError(
            f"Lock '{self.key}' is already held",
            details={"key": self.key, "blocking": self.blocking},
        )

    def release(self) -> bool:
        if self._token is None:
            return False
        released = self.redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(released)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        self.release()
        return False


def payee_payout_lock(payee_id: Any) -> DistributedLock:
    """Non-blocking lock on one payee's payout pipeline."""
    return DistributedLock(
        f"payouts:payee:{payee_id}",
        ttl=getattr(settings, "PAYOUT_PAYEE_LOCK_TTL_SECONDS", 300),
    )
