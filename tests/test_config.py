"""
tests/test_config.py — Configuration Loader & Constants Tests
==============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from voterelay.config import load_config
from voterelay.constants import webhook_url
from voterelay.database.models import VoteSource
from voterelay.engine.snowflake import VOTE_ID_EPOCH

MINIMAL = """
service_name: "VoteRelay"
host: "127.0.0.1"
port: 8080
public_base_url: "https://votes.example.com/"
"""


@pytest.fixture
def write_config(tmp_path):
    def _write(text: str):
        path = tmp_path / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


class TestLoadConfig:
    def test_defaults(self, write_config):
        cfg = load_config(write_config(MINIMAL))
        assert cfg.service_name == "VoteRelay"
        assert cfg.port == 8080
        assert cfg.public_base_url == "https://votes.example.com"
        assert cfg.queue_backend == "database"
        assert cfg.vote_id_epoch == VOTE_ID_EPOCH
        assert cfg.worker_id == 0
        assert cfg.notify_timeout_seconds == 5.0
        assert cfg.signature_tolerance_seconds is None

    def test_full(self, write_config):
        cfg = load_config(write_config(MINIMAL + """
queue_backend: memory
vote_id_epoch: "2026-01-01T00:00:00Z"
worker_id: 4
notify_timeout_seconds: 2
signature_tolerance_seconds: 300
"""))
        assert cfg.queue_backend == "memory"
        assert cfg.vote_id_epoch == datetime(2026, 1, 1, tzinfo=UTC)
        assert cfg.worker_id == 4
        assert cfg.notify_timeout_seconds == 2.0
        assert cfg.signature_tolerance_seconds == 300

    def test_env_var_path(self, write_config, monkeypatch):
        path = write_config(MINIMAL)
        monkeypatch.setenv("VOTERELAY_CONFIG", str(path))
        assert load_config().host == "127.0.0.1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_key(self, write_config):
        with pytest.raises(KeyError):
            load_config(write_config('service_name: "x"\nhost: "h"\nport: 1\n'))

    def test_bad_queue_backend(self, write_config):
        with pytest.raises(ValueError, match="queue_backend"):
            load_config(write_config(MINIMAL + "queue_backend: kafka\n"))

    def test_naive_epoch_rejected(self, write_config):
        with pytest.raises(ValueError, match="UTC offset"):
            load_config(write_config(MINIMAL + 'vote_id_epoch: "2026-01-01T00:00:00"\n'))


class TestWebhookUrl:
    def test_topgg_uses_v1_path(self):
        assert webhook_url(VoteSource.TOPGG, "123", "https://votes.example.com/") == (
            "https://votes.example.com/webhook/topgg/v1/123"
        )

    def test_dbl(self):
        assert webhook_url("dbl", "123", "https://votes.example.com") == (
            "https://votes.example.com/webhook/dbl/123"
        )
