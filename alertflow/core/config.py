import json
import os
from typing import Optional

import redis
from dotenv import load_dotenv
from supabase import Client, ClientOptions, create_client

from alertflow.services.sla import SlaPolicy

load_dotenv()

DEFAULT_STORE_TIMEOUT_SECONDS = 10.0
DEFAULT_CACHE_TIMEOUT_SECONDS = 0.5


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_supabase() -> Client:
    SUPABASE_URL = os.getenv("SUPABASE_URL")
    SUPABASE_KEY = os.getenv("SUPABASE_KEY")
    timeout = _env_float("STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT_SECONDS)
    return create_client(
        SUPABASE_URL, SUPABASE_KEY, options=ClientOptions(postgrest_client_timeout=timeout)
    )


def get_redis() -> Optional[redis.Redis]:
    """Cliente Redis para el cache compartido, o None si REDIS_URL no está definido."""
    REDIS_URL = os.getenv("REDIS_URL")
    if not REDIS_URL:
        return None
    timeout = _env_float("CACHE_TIMEOUT_SECONDS", DEFAULT_CACHE_TIMEOUT_SECONDS)
    return redis.Redis.from_url(
        REDIS_URL,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        decode_responses=True,
    )


def get_sla_policy() -> SlaPolicy:
    """
    Política de SLA desde SLA_POLICY_JSON, o la política por defecto.

    Raises:
        ValueError: si SLA_POLICY_JSON no es JSON válido
        ValidationError: si alguna fila de la política es inválida
    """
    raw = os.getenv("SLA_POLICY_JSON")
    if not raw:
        return SlaPolicy.default()
    return SlaPolicy.from_minutes(json.loads(raw))
