"""HTTP API tests with the executor swapped for the in-memory backend."""

import uuid

import httpx
import pytest
from fastapi.testclient import TestClient

from codejudge.main import app
from codejudge.services.executor_service import get_executor, get_submission_service
from codejudge.services.submission_service import SubmissionService

SUM = "print(int(input()) + int(input()))"


@pytest.fixture
def client(executor):
    app.dependency_overrides[get_executor] = lambda: executor
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def service(executor):
    service = SubmissionService(executor)
    app.dependency_overrides[get_submission_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_evaluate_accepted(client):
    response = client.post("/api/v1/evaluate", json={
        "language": "python",
        "sourceCode": SUM,
        "testCases": [{"input": "2\n3", "expectedOutput": "5"}],
    })
    assert response.status_code == 200
    body = response.json()
    assert body["result"] == "accepted"
    assert body["errorMessage"] is None
    assert body["testResults"][0]["isPassed"] is True
    assert body["testResults"][0]["actualOutput"] == "5"
    assert body["testResults"][0]["testCaseIndex"] == 0


def test_evaluate_wrong_answer(client):
    response = client.post("/api/v1/evaluate", json={
        "language": "python",
        "sourceCode": SUM,
        "testCases": [
            {"input": "1 1", "expectedOutput": "2"},
            {"input": "1 1", "expectedOutput": "3"},
        ],
    })
    body = response.json()
    assert body["result"] == "wrong_answer"
    assert body["errorMessage"] == 'Expected: "3", Got: "2"'
    assert len(body["testResults"]) == 2


def test_unsupported_language_is_400(client, backend):
    response = client.post("/api/v1/evaluate", json={
        "language": "cobol",
        "sourceCode": "x",
        "testCases": [{"input": "", "expectedOutput": ""}],
    })
    assert response.status_code == 400
    assert response.json() == {
        "error": "Unsupported programming language: 'cobol'",
        "code": "VALIDATION_ERROR",
    }
    assert backend.containers == []


def test_malformed_body_is_422(client):
    response = client.post("/api/v1/evaluate", json={"language": "python"})
    assert response.status_code == 422


def test_sample(client):
    response = client.post("/api/v1/evaluate/sample", json={
        "language": "python",
        "sourceCode": SUM,
        "input": "20 22",
        "expectedOutput": "42",
    })
    assert response.status_code == 200
    assert response.json() == {
        "input": "20 22",
        "expected": "42",
        "output": "42",
        "passed": True,
        "error": None,
    }


def test_languages(client):
    response = client.get("/api/v1/languages")
    assert response.status_code == 200
    languages = {entry["language"]: entry for entry in response.json()}
    assert len(languages) == 10
    assert languages["java"]["compiled"] is True
    assert languages["python"]["timeLimit"] == 5000


def _async_client():
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_submission_lifecycle(service):
    async with _async_client() as http:
        response = await http.post("/api/v1/submissions/", json={
            "language": "python",
            "sourceCode": SUM,
            "testCases": [{"input": "1 1", "expectedOutput": "2"}],
        })
        assert response.status_code == 202
        created = response.json()
        assert created["status"] == "pending"

        record = service.get(uuid.UUID(created["id"]))
        await service.wait(record.id, timeout=5)

        response = await http.get(f"/api/v1/submissions/{created['id']}")
        body = response.json()
        assert body["status"] == "completed"
        assert body["score"] == 100
        assert body["result"]["result"] == "accepted"


@pytest.mark.asyncio
async def test_unknown_submission_is_404(service):
    async with _async_client() as http:
        response = await http.get("/api/v1/submissions/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
        response = await http.delete("/api/v1/submissions/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_invalid_submission_is_400(service):
    async with _async_client() as http:
        response = await http.post("/api/v1/submissions/", json={
            "language": "python",
            "sourceCode": SUM,
            "testCases": [],
        })
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
