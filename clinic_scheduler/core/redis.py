import redis.asyncio as redis
from clinic_scheduler.core.config import settings

TOKEN_PREFIX = "clinic_scheduler:token:"

class RedisClient:
    """Session token store; a token is valid only while its key exists."""

    def __init__(self, url: str = settings.REDIS_URL):
        self.redis = redis.from_url(url, encoding="utf-8", decode_responses=True)

    @staticmethod
    def _key(token: str) -> str:
        return f"{TOKEN_PREFIX}{token}"

    async def set_token(self, token: str, value: str, expire: int):
        await self.redis.set(self._key(token), value, ex=expire)

    async def get_token(self, token: str) -> str | None:
        return await self.redis.get(self._key(token))

    async def delete_token(self, token: str):
        await self.redis.delete(self._key(token))

    async def ping(self) -> bool:
        return await self.redis.ping()

    async def close(self):
        await self.redis.aclose()

redis_client = RedisClient()
