from alertflow.cache.shared_cache import SharedCache
from alertflow.core.clock import Clock, utcnow


class SuppressionGate:
    """
    Flag de supresión por dispositivo con TTL fijo.

    No existe "deactivate": la expiración es la única forma de quitarlo.
    """

    def __init__(self, cache: SharedCache, clock: Clock = utcnow):
        self.cache = cache
        self.clock = clock

    def is_active(self, key: str) -> bool:
        return self.cache.exists(key)

    def activate(self, key: str, ttl_seconds: int) -> None:
        # Idempotente: reactivar solo reinicia el TTL
        self.cache.set_with_expiry(key, self.clock().isoformat(), ttl_seconds)
