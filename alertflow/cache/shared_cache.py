from abc import ABC, abstractmethod
from typing import Optional

import redis
from redis.exceptions import RedisError

from alertflow.core.errors import DependencyUnavailableError


class SharedCache(ABC):
    """
    Cache compartido de baja durabilidad (contadores y flags con TTL).

    Cualquier fallo del backend se expone como DependencyUnavailableError;
    decidir si eso es fatal o se ignora es cosa de quien llama.
    """

    @abstractmethod
    def increment(self, key: str, ttl_seconds: Optional[int] = None) -> int:
        """Incrementa atómicamente `key` (1 si no existía) y, si se indica, fija su TTL."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        pass


class RedisSharedCache(SharedCache):
    def __init__(self, client: redis.Redis):
        self.client = client

    def increment(self, key: str, ttl_seconds: Optional[int] = None) -> int:
        try:
            # MULTI/EXEC: el INCR y el EXPIRE se aplican juntos
            with self.client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                if ttl_seconds is not None:
                    pipe.expire(key, ttl_seconds)
                results = pipe.execute()
        except RedisError as exc:
            raise DependencyUnavailableError(f"cache increment failed: {exc}") from exc
        return int(results[0])

    def exists(self, key: str) -> bool:
        try:
            return bool(self.client.exists(key))
        except RedisError as exc:
            raise DependencyUnavailableError(f"cache exists failed: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except RedisError as exc:
            raise DependencyUnavailableError(f"cache get failed: {exc}") from exc

    def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise DependencyUnavailableError(f"cache set failed: {exc}") from exc
