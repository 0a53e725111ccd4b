import json
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

import alertflow.core.config as config
from alertflow.core.errors import ValidationError


@pytest.fixture(autouse=True)
def set_env(monkeypatch):
    """Configura variables de entorno simuladas antes de cada test."""
    monkeypatch.setenv("SUPABASE_URL", "https://fake.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "fake-key-123")
    monkeypatch.delenv("STORE_TIMEOUT_SECONDS", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("CACHE_TIMEOUT_SECONDS", raising=False)
    monkeypatch.delenv("SLA_POLICY_JSON", raising=False)


def test_get_supabase_calls_create_client():
    """Verifica que get_supabase llame a create_client con los valores esperados."""
    mock_client = MagicMock(name="SupabaseClientMock")

    with patch(
        "alertflow.core.config.create_client", return_value=mock_client
    ) as mock_create:
        client = config.get_supabase()

    args, kwargs = mock_create.call_args
    assert args == ("https://fake.supabase.co", "fake-key-123")
    assert kwargs["options"].postgrest_client_timeout == 10.0
    assert client == mock_client


def test_get_supabase_uses_store_timeout(monkeypatch):
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "3")

    with patch("alertflow.core.config.create_client") as mock_create:
        config.get_supabase()

    assert mock_create.call_args.kwargs["options"].postgrest_client_timeout == 3.0


def test_get_redis_without_url_returns_none():
    assert config.get_redis() is None


def test_get_redis_uses_cache_timeout(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("CACHE_TIMEOUT_SECONDS", "0.25")

    with patch("alertflow.core.config.redis.Redis.from_url") as mock_from_url:
        config.get_redis()

    mock_from_url.assert_called_once_with(
        "redis://cache:6379/0",
        socket_timeout=0.25,
        socket_connect_timeout=0.25,
        decode_responses=True,
    )


def test_invalid_timeout_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("CACHE_TIMEOUT_SECONDS", "soon")

    with patch("alertflow.core.config.redis.Redis.from_url") as mock_from_url:
        config.get_redis()

    assert mock_from_url.call_args.kwargs["socket_timeout"] == 0.5


def test_get_sla_policy_default():
    policy = config.get_sla_policy()

    assert policy.offsets_for("critical").acknowledge == timedelta(minutes=15)


def test_get_sla_policy_from_env(monkeypatch):
    monkeypatch.setenv(
        "SLA_POLICY_JSON",
        json.dumps(
            {"high": {"acknowledge_minutes": 10, "investigate_minutes": 20, "resolve_minutes": 30}}
        ),
    )

    policy = config.get_sla_policy()

    assert policy.offsets_for("high").resolve == timedelta(minutes=30)
    with pytest.raises(ValidationError):
        policy.offsets_for("critical")


@pytest.mark.parametrize(
    "raw,error",
    [("{not json", ValueError), ('{"urgent": {}}', ValidationError)],
)
def test_get_sla_policy_rejects_malformed_env(monkeypatch, raw, error):
    monkeypatch.setenv("SLA_POLICY_JSON", raw)

    with pytest.raises(error):
        config.get_sla_policy()
