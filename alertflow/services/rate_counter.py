from alertflow.cache.shared_cache import SharedCache


class RateCounter:
    """
    Contador atómico por clave con expiración renovable.

    Cada `increment` vuelve a fijar el TTL a `window_seconds`, así que el
    valor representa "eventos desde el último silencio de `window_seconds`",
    no un bucket fijo: un goteo constante nunca vuelve a cero.
    """

    def __init__(self, cache: SharedCache, window_seconds: int):
        self.cache = cache
        self.window_seconds = window_seconds

    def increment(self, key: str) -> int:
        # Sin reintentos: los errores del backend suben tal cual
        return self.cache.increment(key, ttl_seconds=self.window_seconds)
