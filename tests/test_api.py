"""Tests for the HTTP API (TestClient with dependency overrides).

Covers:
- Full session flow: configure, analyze (upload), edit, validate, calculate,
  select, validate calculations, save
- Domain errors mapped to 400 / 404 / 502 with the French message
- Saved analyses: list, export CSV, lineage, delete, mark old versions
- Catalog and maintenance routes, health check
"""

from __future__ import annotations

import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api import analyses, catalog, maintenance, sessions
from src.api.deps import get_ai_client, get_analyses, get_catalog, get_sessions
from src.integrations.ai.client import AIClientError, AIExtractionClient, AIResponse
from src.integrations.gateway.client import GatewayError
from src.models.enums import AnalysisStatus
from src.store.catalog import CatalogRepository
from src.workflow.registry import SessionRegistry

AI_TEXT = json.dumps([
    {"name": "reference_dessin", "data_type": "string", "value": "PL-77", "confidence": 93, "justification": "Cartouche"},
    {"name": "materiau", "data_type": "string", "value": "Acier doux", "confidence": 88, "justification": "Nomenclature"},
    {"name": "type_piece", "data_type": "string", "value": "tube", "confidence": 80, "justification": "Vue"},
    {"name": "longueur", "data_type": "string", "value": "24 in", "confidence": 91, "justification": "Cote"},
])


@pytest.fixture
def mock_emit():
    with (
        patch("src.workflow.controller.emit", new_callable=AsyncMock),
        patch("src.extraction.pipeline.emit", new_callable=AsyncMock),
        patch("src.maintenance.drafts.emit", new_callable=AsyncMock),
    ):
        yield


@pytest.fixture
def catalog_repo(client_record, profile) -> AsyncMock:
    mock = AsyncMock(spec=CatalogRepository)
    mock.get_client.side_effect = lambda client_id: client_record if client_id == "c1" else None
    mock.get_profile.side_effect = lambda profile_id: profile if profile_id == "p1" else None
    mock.list_clients.return_value = [client_record]
    mock.list_profiles.return_value = [profile]
    return mock


@pytest.fixture
def ai_client() -> AsyncMock:
    mock = AsyncMock(spec=AIExtractionClient)
    mock.analyze.return_value = AIResponse(text=AI_TEXT, file_url="https://files/plan.pdf", file_type="application/pdf")
    return mock


@pytest.fixture
def client(repo, catalog_repo, ai_client, mock_emit):
    """Test client over the API routers with in-memory collaborators."""
    registry = SessionRegistry(repo, autosave_delay=60)
    test_app = FastAPI()
    for module in (sessions, analyses, catalog, maintenance):
        test_app.include_router(module.router)
    test_app.dependency_overrides[get_analyses] = lambda: repo
    test_app.dependency_overrides[get_catalog] = lambda: catalog_repo
    test_app.dependency_overrides[get_ai_client] = lambda: ai_client
    test_app.dependency_overrides[get_sessions] = lambda: registry
    with TestClient(test_app) as test_client:
        yield test_client


def _start(client: TestClient, **body) -> dict:
    resp = client.post("/sessions", json={"clientId": "c1", "profileId": "p1", **body})
    assert resp.status_code == 201
    return resp.json()


def _upload(client: TestClient, session_id: str) -> dict:
    resp = client.post(
        f"/sessions/{session_id}/analyze",
        files={"file": ("plan.pdf", b"%PDF-1.4 test", "application/pdf")},
    )
    assert resp.status_code == 200
    return resp.json()


# ── Session workflow ─────────────────────────────────────────────────


class TestSessionFlow:
    def test_full_flow(self, client, repo):
        view = _start(client, quantity=25)
        session_id = view["sessionId"]
        assert view["step"] == 1
        assert view["status"] == "draft"
        assert view["clientId"] == "c1"
        assert view["quantity"] == 25

        view = _upload(client, session_id)
        assert view["step"] == 2
        assert view["title"] == "PL-77"
        assert view["currentAnalysisId"] == "id1"
        assert view["extraction"]["extractedData"]["material"]["value"] == "Acier doux"
        assert view["missingFields"] == []

        resp = client.patch(f"/sessions/{session_id}/fields", json={"path": "material", "value": "Acier 1018"})
        assert resp.status_code == 200
        material = resp.json()["extraction"]["extractedData"]["material"]
        assert material == {"value": "Acier 1018", "confidence": 100.0, "reason": "manually edited"}

        view = client.post(f"/sessions/{session_id}/validate").json()
        assert view["step"] == 3
        assert view["isValidated"] is True

        view = client.post(f"/sessions/{session_id}/calculate").json()
        ranked = view["calculation"]["ranked"]
        assert ranked[0]["candidateId"] == "m1:default"
        assert ranked[0]["piecesPerBar"] == 11

        resp = client.post(f"/sessions/{session_id}/select", json={"candidateId": "m1:default"})
        assert resp.status_code == 200

        view = client.post(f"/sessions/{session_id}/validate-calculations").json()
        assert view["step"] == 4
        assert view["status"] == "completed"

        resp = client.post(f"/sessions/{session_id}/save")
        assert resp.status_code == 200
        saved = resp.json()["analysis"]
        assert saved["status"] == "completed"
        assert saved["quantity"] == 25
        assert saved["parentId"] == "id1"
        assert saved["versionNumber"] == len(repo.stored)

    def test_get_and_close(self, client):
        session_id = _start(client)["sessionId"]
        assert client.get(f"/sessions/{session_id}").status_code == 200
        assert client.delete(f"/sessions/{session_id}").status_code == 204
        assert client.get(f"/sessions/{session_id}").status_code == 404

    def test_update_metadata(self, client):
        session_id = _start(client)["sessionId"]
        resp = client.patch(f"/sessions/{session_id}", json={"title": "Support", "contextText": "Urgent"})
        assert resp.json()["title"] == "Support"
        assert resp.json()["contextText"] == "Urgent"

    def test_step_back_clears_validation(self, client):
        session_id = _start(client)["sessionId"]
        _upload(client, session_id)
        client.post(f"/sessions/{session_id}/validate")

        view = client.post(f"/sessions/{session_id}/step", json={"target": 2}).json()
        assert view["step"] == 2
        assert view["isValidated"] is False

    def test_reset(self, client):
        session_id = _start(client)["sessionId"]
        _upload(client, session_id)
        view = client.post(f"/sessions/{session_id}/reset").json()
        assert view["sessionId"] == session_id
        assert view["step"] == 1
        assert view["extraction"] is None

    def test_resume_saved_analysis(self, client, repo, make_analysis):
        repo.get.return_value = make_analysis("a9", status=AnalysisStatus.VALIDATED, validated=True, current_step=3)
        view = _start(client, analysisId="a9")
        assert view["currentAnalysisId"] == "a9"
        assert view["step"] == 3
        assert view["isValidated"] is True


class TestSessionErrors:
    def test_unknown_session(self, client):
        resp = client.get(f"/sessions/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Session introuvable."

    def test_unknown_client(self, client):
        resp = client.post("/sessions", json={"clientId": "nope"})
        assert resp.status_code == 404

    def test_invalid_quantity(self, client):
        resp = client.post("/sessions", json={"quantity": 0})
        assert resp.status_code == 400
        assert "au moins 1" in resp.json()["detail"]

    def test_analyze_without_profile(self, client):
        resp = client.post("/sessions", json={"clientId": "c1"})
        session_id = resp.json()["sessionId"]
        resp = client.post(f"/sessions/{session_id}/analyze", files={"file": ("plan.pdf", b"%PDF", "application/pdf")})
        assert resp.status_code == 400

    def test_calculate_before_validation(self, client):
        session_id = _start(client)["sessionId"]
        _upload(client, session_id)
        resp = client.post(f"/sessions/{session_id}/calculate")
        assert resp.status_code == 400
        assert "valider" in resp.json()["detail"]

    def test_unknown_field_path(self, client):
        session_id = _start(client)["sessionId"]
        _upload(client, session_id)
        resp = client.patch(f"/sessions/{session_id}/fields", json={"path": "inconnu", "value": "x"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Champ introuvable : inconnu"

    def test_ai_failure(self, client, ai_client):
        ai_client.analyze.side_effect = AIClientError("Erreur API externe: 500", 500)
        session_id = _start(client)["sessionId"]
        resp = client.post(f"/sessions/{session_id}/analyze", files={"file": ("plan.pdf", b"%PDF", "application/pdf")})
        assert resp.status_code == 502
        assert resp.json()["detail"] == "Erreur lors de l'analyse du fichier"

    def test_save_store_failure(self, client, repo):
        session_id = _start(client)["sessionId"]
        _upload(client, session_id)
        client.post(f"/sessions/{session_id}/validate")
        client.post(f"/sessions/{session_id}/calculate")
        client.post(f"/sessions/{session_id}/validate-calculations")
        repo.create_version.side_effect = GatewayError("Gateway API Error 500: boom", 500)

        resp = client.post(f"/sessions/{session_id}/save")
        assert resp.status_code == 502


# ── Saved analyses ───────────────────────────────────────────────────


class TestAnalysesRoutes:
    def test_list(self, client, repo, make_analysis):
        repo.list.return_value = [make_analysis("a1")]
        resp = client.get("/analyses", params={"clientId": "c1", "latestOnly": "true"})
        assert resp.status_code == 200
        assert resp.json()[0]["id"] == "a1"
        repo.list.assert_awaited_once_with(client_id="c1", latest_only=True)

    def test_list_gateway_error(self, client, repo):
        repo.list.side_effect = GatewayError("Gateway request failed", None)
        resp = client.get("/analyses")
        assert resp.status_code == 502

    def test_export_csv(self, client, repo, make_analysis):
        repo.list.return_value = [make_analysis("a1")]
        resp = client.get("/analyses/export.csv")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "attachment" in resp.headers["content-disposition"]
        assert resp.text.startswith('"Titre"')
        repo.list.assert_awaited_once_with(client_id=None, latest_only=True)

    def test_get_missing(self, client, repo):
        repo.get.return_value = None
        resp = client.get("/analyses/zzz")
        assert resp.status_code == 404

    def test_versions(self, client, repo, make_analysis):
        repo.get.return_value = make_analysis("v2", parent_id="root", version=2)
        repo.list_lineage.return_value = [make_analysis("root"), make_analysis("v2", parent_id="root", version=2)]
        resp = client.get("/analyses/v2/versions")
        assert [v["versionNumber"] for v in resp.json()] == [1, 2]
        repo.list_lineage.assert_awaited_once_with("root")

    def test_delete(self, client, repo):
        assert client.delete("/analyses/a1").status_code == 204
        repo.delete.assert_awaited_once_with("a1")

    def test_mark_old_versions(self, client, repo):
        repo.mark_old_versions.return_value = 2
        resp = client.post("/analyses/mark-old-versions", json={"parentId": "root", "newLatestId": "v3"})
        assert resp.json() == {"updated": 2}
        repo.mark_old_versions.assert_awaited_once_with("root", "v3")


class TestCatalogAndMaintenance:
    def test_clients(self, client):
        assert client.get("/catalog/clients").json()[0]["name"] == "Métallerie Dupuis"

    def test_profile_missing(self, client):
        assert client.get("/catalog/profiles/zzz").status_code == 404

    def test_cleanup_drafts(self, client, repo):
        repo.list.return_value = []
        resp = client.post("/maintenance/cleanup-drafts", params={"retentionDays": 7})
        assert resp.json() == {"deleted": [], "count": 0}


class TestHealth:
    def test_health(self):
        from src.main import app

        resp = TestClient(app).get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
