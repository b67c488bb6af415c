import redis.asyncio as aioredis

from saga_ledger.lock.domain.interfaces import ILockStore
from saga_ledger.seedwork.domain.session.interfaces import ISession

__all__ = ('RedisLockStore',)


# Deletes the key only while it still holds the expected holder.
_COMPARE_AND_DELETE = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


class RedisLockStore(ILockStore):
    """Lock store on a Redis server.

    The session argument is accepted for interface parity and ignored: Redis
    commands are atomic on their own and do not take part in the SQL
    transaction of the session.
    """

    def __init__(self, client: aioredis.Redis):
        self._client = client
        self._compare_and_delete = client.register_script(_COMPARE_AND_DELETE)

    @classmethod
    def from_url(cls, url: str) -> "RedisLockStore":
        return cls(aioredis.from_url(url))

    async def set_if_absent(self, session: ISession, key: str, holder: str, ttl: int) -> bool:
        return bool(await self._client.set(key, holder, nx=True, ex=ttl))

    async def get(self, session: ISession, key: str) -> str | None:
        value = await self._client.get(key)
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        return value

    async def delete(self, session: ISession, key: str) -> None:
        await self._client.delete(key)

    async def delete_if_holder(self, session: ISession, key: str, holder: str) -> bool:
        return bool(await self._compare_and_delete(keys=[key], args=[holder]))

    async def close(self):
        await self._client.aclose()
