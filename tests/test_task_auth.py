"""Tests for task and admin authentication."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from fincas.api.task_auth import (
    LOCAL_DEV_AUDIENCE,
    require_admin_key,
    verify_task_auth,
    verify_task_oidc,
)


@pytest.fixture
def auth_client():
    app = FastAPI()

    @app.post("/probe")
    def probe(request: Request) -> dict:
        return {"ok": verify_task_auth(request)}

    @app.get("/admin", dependencies=[Depends(require_admin_key)])
    def admin() -> dict:
        return {"ok": True}

    return TestClient(app)


class TestVerifyTaskAuth:
    def test_internal_secret_accepted_in_local_dev(self, auth_client, monkeypatch):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", LOCAL_DEV_AUDIENCE)
        monkeypatch.setenv("INTERNAL_TASK_SECRET", "s3cret")
        response = auth_client.post("/probe", headers={"X-Internal-Task-Secret": "s3cret"})
        assert response.json() == {"ok": True}

    def test_wrong_secret_rejected(self, auth_client, monkeypatch):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", LOCAL_DEV_AUDIENCE)
        monkeypatch.setenv("INTERNAL_TASK_SECRET", "s3cret")
        response = auth_client.post("/probe", headers={"X-Internal-Task-Secret": "nope"})
        assert response.json() == {"ok": False}

    def test_secret_ignored_outside_local_dev(self, auth_client, monkeypatch):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "https://worker.example.com")
        monkeypatch.setenv("INTERNAL_TASK_SECRET", "s3cret")
        response = auth_client.post("/probe", headers={"X-Internal-Task-Secret": "s3cret"})
        assert response.json() == {"ok": False}

    def test_bearer_token_verified(self, auth_client, monkeypatch):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "https://worker.example.com")
        with patch("fincas.api.task_auth.verify_task_oidc", return_value=True) as mock_verify:
            response = auth_client.post("/probe", headers={"Authorization": "Bearer abc"})
        assert response.json() == {"ok": True}
        mock_verify.assert_called_once_with("abc")


class TestVerifyTaskOidc:
    def test_missing_audience_fails_closed(self, monkeypatch):
        monkeypatch.delenv("TASKS_OIDC_AUDIENCE", raising=False)
        assert verify_task_oidc("token") is False

    def test_invalid_token(self, monkeypatch):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "aud")
        with patch(
            "fincas.api.task_auth.id_token.verify_oauth2_token",
            side_effect=ValueError("bad token"),
        ):
            assert verify_task_oidc("token") is False

    def test_service_account_must_match(self, monkeypatch):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "aud")
        monkeypatch.setenv("TASKS_OIDC_SERVICE_ACCOUNT", "tasks@example.com")
        with patch(
            "fincas.api.task_auth.id_token.verify_oauth2_token",
            return_value={"email": "other@example.com"},
        ):
            assert verify_task_oidc("token") is False
        with patch(
            "fincas.api.task_auth.id_token.verify_oauth2_token",
            return_value={"email": "tasks@example.com"},
        ):
            assert verify_task_oidc("token") is True


class TestRequireAdminKey:
    def test_unconfigured_rejects(self, auth_client, monkeypatch):
        monkeypatch.delenv("ADMIN_API_KEY", raising=False)
        assert auth_client.get("/admin", headers={"X-Admin-Key": "x"}).status_code == 401

    def test_missing_header_rejects(self, auth_client, monkeypatch):
        monkeypatch.setenv("ADMIN_API_KEY", "k")
        assert auth_client.get("/admin").status_code == 401

    def test_valid_key(self, auth_client, monkeypatch):
        monkeypatch.setenv("ADMIN_API_KEY", "k")
        response = auth_client.get("/admin", headers={"X-Admin-Key": "k"})
        assert response.status_code == 200
