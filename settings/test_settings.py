import logging
from unittest.mock import Mock

from cryptography.fernet import Fernet


class TestSettings(Mock):
    environment = "test"
    token_encryption_key = Fernet.generate_key().decode()
    logging = Mock(level=logging.INFO, use_config=False, use_pretty_json=False)
    fanvue = Mock(
        api_base="https://api.fanvue.test",
        token_url="https://auth.fanvue.test/oauth/token",
        api_version="2025-06-26",
        client_id="test-client",
        client_secret="test-client-secret",
        webhook_secret="test-webhook-secret",
        request_timeout=5,
    )
    database = Mock(
        host="postgresql://localhost:5432",
        min_pool_size=5,
        max_pool_size=20,
        async_host="postgresql+asyncpg://localhost:5432",
        url="postgresql+asyncpg://localhost:5432/fansync_test",
    )
    retry = Mock(max_retries=3, base_delay_ms=1000)
    poller = Mock(
        interval=60,
        account_group_size=5,
        chat_page_size=50,
        message_page_size=50,
        token_sweep_interval=3600,
        token_sweep_horizon=7200,
    )
    range_fetch = Mock(max_span_days=28, concurrency=3, max_pages=20, page_limit=100)
    webhook = Mock(tolerance_seconds=300)
    sentry = Mock(dsn=None, is_enabled=False)
