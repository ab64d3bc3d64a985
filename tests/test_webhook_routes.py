"""
tests/test_webhook_routes.py — FastAPI Webhook Route Tests
===========================================================
Exercises the HTTP surface with the FastAPI TestClient.  The ingestion
service is swapped in through ``app.dependency_overrides`` so no real
database or config file is needed.

These tests verify:
- Status codes for every outcome (2xx, 400, 403, 404, 503, 500)
- Empty response bodies on success
- All Top.gg paths, including the legacy alias, reach the same handler
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from conftest import (
    APP_ID,
    SECRET,
    dbl_body,
    make_app_config,
    make_forwarding,
    topgg_v0_body,
    topgg_v1_body,
    v1_headers,
)
from voterelay.api.deps import get_ingestion_service, get_tasks
from voterelay.api.main import app
from voterelay.database.models import VoteSource
from voterelay.engine.snowflake import SnowflakeGenerator
from voterelay.services.ingestion import VoteIngestionService


@pytest.fixture
def relay(db_engine, role_queue, forward_queue, notifier):
    """An ingestion service sharing the app's detached-task group."""
    return VoteIngestionService(
        engine=db_engine,
        role_queue=role_queue,
        forward_queue=forward_queue,
        notifier=notifier,
        tasks=get_tasks(),
        id_generator=SnowflakeGenerator(worker_id=2, process_id=2),
    )


@pytest.fixture
def client(relay):
    """Create a FastAPI TestClient with raise_server_exceptions=False."""
    app.dependency_overrides[get_ingestion_service] = lambda: relay
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Top.gg
# ===========================================================================
class TestTopGGRoutes:
    def test_v1_vote_is_204_with_empty_body(self, client, db_engine, role_queue):
        make_app_config(db_engine)
        body = topgg_v1_body()

        resp = client.post(f"/webhook/topgg/v1/{APP_ID}", content=body, headers=v1_headers(body))

        assert resp.status_code == 204
        assert resp.content == b""
        assert len(role_queue.drain()) == 1

    @pytest.mark.parametrize("path", [f"/webhook/topgg/v0/{APP_ID}", f"/webhook/topgg/{APP_ID}"])
    def test_v0_paths_return_200(self, client, db_engine, path):
        make_app_config(db_engine)

        resp = client.post(path, content=topgg_v0_body(), headers={"Authorization": SECRET})

        assert resp.status_code == 200
        assert resp.content == b""

    def test_legacy_path_accepts_v1_signature(self, client, db_engine):
        make_app_config(db_engine)
        body = topgg_v1_body()

        resp = client.post(f"/webhook/topgg/{APP_ID}", content=body, headers=v1_headers(body))

        assert resp.status_code == 204

    def test_bad_signature_is_403(self, client, db_engine, role_queue):
        make_app_config(db_engine)
        body = topgg_v1_body()

        resp = client.post(
            f"/webhook/topgg/v1/{APP_ID}",
            content=body,
            headers=v1_headers(body, secret="wrong"),
        )

        assert resp.status_code == 403
        assert len(role_queue) == 0

    def test_malformed_signature_header_is_400(self, client, db_engine):
        make_app_config(db_engine)
        resp = client.post(
            f"/webhook/topgg/v1/{APP_ID}",
            content=topgg_v1_body(),
            headers={"x-topgg-signature": "garbage"},
        )
        assert resp.status_code == 400

    def test_test_vote_is_acknowledged(self, client, db_engine, notifier):
        make_app_config(db_engine)
        body = topgg_v1_body(event_type="webhook.test")

        resp = client.post(f"/webhook/topgg/v1/{APP_ID}", content=body, headers=v1_headers(body))

        assert resp.status_code == 204

    def test_unknown_application_is_404(self, client):
        resp = client.post(
            "/webhook/topgg/v0/999", content=topgg_v0_body(), headers={"authorization": SECRET},
        )
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Application not found"}

    def test_missing_secret_is_also_404(self, client, db_engine):
        make_app_config(db_engine, secret=None)
        resp = client.post(
            f"/webhook/topgg/v0/{APP_ID}", content=topgg_v0_body(), headers={"authorization": "x"},
        )
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Application not found"}

    def test_missing_role_is_400(self, client, db_engine):
        make_app_config(db_engine, vote_role_id=None)
        resp = client.post(
            f"/webhook/topgg/v0/{APP_ID}", content=topgg_v0_body(), headers={"authorization": SECRET},
        )
        assert resp.status_code == 400
        assert "not properly configured" in resp.json()["detail"]


# ===========================================================================
# discordbotlist.com
# ===========================================================================
class TestDBLRoutes:
    def test_vote_is_200(self, client, db_engine, role_queue):
        make_app_config(db_engine, source=VoteSource.DBL)

        resp = client.post(f"/webhook/dbl/{APP_ID}", content=dbl_body(), headers={"authorization": SECRET})

        assert resp.status_code == 200
        assert len(role_queue.drain()) == 1

    def test_vote_with_forwarding(self, client, db_engine):
        make_app_config(db_engine, source=VoteSource.DBL)
        make_forwarding(db_engine)

        resp = client.post(f"/webhook/dbl/{APP_ID}", content=dbl_body(), headers={"authorization": SECRET})

        assert resp.status_code == 200

    def test_wrong_authorization_is_403(self, client, db_engine):
        make_app_config(db_engine, source=VoteSource.DBL)
        resp = client.post(f"/webhook/dbl/{APP_ID}", content=dbl_body(), headers={"authorization": "no"})
        assert resp.status_code == 403

    def test_malformed_body_is_400(self, client, db_engine):
        make_app_config(db_engine, source=VoteSource.DBL)
        resp = client.post(f"/webhook/dbl/{APP_ID}", content=b"not json", headers={"authorization": SECRET})
        assert resp.status_code == 400


# ===========================================================================
# Failures
# ===========================================================================
class TestFailureStatuses:
    def test_storage_outage_is_503(self, client, db_engine):
        make_app_config(db_engine)
        with patch(
            "voterelay.services.ingestion.insert_vote",
            side_effect=OperationalError("INSERT", {}, Exception("down")),
        ):
            resp = client.post(
                f"/webhook/topgg/v0/{APP_ID}", content=topgg_v0_body(), headers={"authorization": SECRET},
            )
        assert resp.status_code == 503

    def test_unexpected_error_is_500_never_2xx(self, client, db_engine):
        make_app_config(db_engine)
        with patch("voterelay.services.ingestion.insert_vote", side_effect=RuntimeError("bug")):
            resp = client.post(
                f"/webhook/topgg/v0/{APP_ID}", content=topgg_v0_body(), headers={"authorization": SECRET},
            )
        assert resp.status_code == 500
