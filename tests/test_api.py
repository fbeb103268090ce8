from http import HTTPStatus

import pytest
from conftest import MemoryStoreMock, seed_user
from fastapi.testclient import TestClient
from pytest_assume.plugin import assume

from app.helpers.config import CONFIG
from app.helpers.reminders import ReminderAdapter


def _create(client: TestClient, user_id: str, **kwargs) -> dict:
    res = client.post(
        "/reminders",
        json={
            "datetime": "2024-01-01T08:00:00Z",
            "title": "Take aspirin",
            "userId": user_id,
            **kwargs,
        },
    )
    assert res.status_code == HTTPStatus.CREATED
    return res.json()["reminder"]


def _reminders_count(client: TestClient) -> int:
    return len(client.portal.call(CONFIG.database.instance.query, "reminders", []))


def test_health(client: TestClient) -> None:
    res = client.get("/health")
    assume(res.status_code == HTTPStatus.OK)
    assume(res.json() == {"status": "Reminder Service is running"})

    res = client.get("/health/liveness")
    assume(res.status_code == HTTPStatus.OK)

    res = client.get("/health/readiness")
    assume(res.status_code == HTTPStatus.OK)
    assume(res.json()["status"] == "ok")


def test_create(client: TestClient, random_text: str) -> None:
    res = client.post(
        "/reminders",
        json={
            "datetime": "2024-01-01T08:00:00Z",
            "title": "Take aspirin",
            "userId": random_text,
        },
    )

    assume(res.status_code == HTTPStatus.CREATED)
    body = res.json()
    assume(body["message"] == "Reminder created successfully")
    reminder = body["reminder"]
    assume(reminder["reminderId"])
    assume(reminder["userId"] == random_text)
    assume(reminder["title"] == "Take aspirin")
    assume(reminder["description"] == "")
    assume(reminder["datetime"] == "2024-01-01T08:00:00Z")
    assume(reminder["completed"] is False)
    assume(reminder["createdAt"])


@pytest.mark.parametrize(
    "missing",
    [
        pytest.param("userId", id="user_id"),
        pytest.param("title", id="title"),
        pytest.param("datetime", id="datetime"),
    ],
)
def test_create_validation(client: TestClient, missing: str) -> None:
    """
    Invalid requests are rejected without writing anything.
    """
    body = {
        "datetime": "2024-01-01T08:00:00Z",
        "title": "Take aspirin",
        "userId": "u1",
    }
    body.pop(missing)
    count = _reminders_count(client)

    res = client.post("/reminders", json=body)

    assume(res.status_code == HTTPStatus.BAD_REQUEST)
    assume(res.json()["error"]["message"] == "Validation error")
    assume(res.json()["error"]["details"])
    assume(_reminders_count(client) == count)


def test_list(client: TestClient, random_text: str) -> None:
    _create(client, random_text, datetime="2024-01-02T08:00:00Z")
    _create(client, random_text, datetime="2024-01-01T08:00:00Z")

    res = client.get(f"/reminders/{random_text}")

    assume(res.status_code == HTTPStatus.OK)
    body = res.json()
    assume(body["userId"] == random_text)
    assume(
        [reminder["datetime"] for reminder in body["reminders"]]
        == ["2024-01-01T08:00:00Z", "2024-01-02T08:00:00Z"]
    )

    res = client.get("/reminders/unknown-user")
    assume(res.status_code == HTTPStatus.OK)
    assume(res.json() == {"reminders": [], "userId": "unknown-user"})


def test_update(client: TestClient, random_text: str) -> None:
    created = _create(client, random_text)

    res = client.put(
        f"/reminders/{created['reminderId']}",
        json={"userId": random_text, "completed": True},
    )

    assume(res.status_code == HTTPStatus.OK)
    body = res.json()
    assume(body["message"] == "Reminder updated successfully")
    assume(body["reminder"]["completed"] is True)
    assume(body["reminder"]["title"] == created["title"])
    assume(body["reminder"]["reminderId"] == created["reminderId"])

    res = client.put(
        f"/reminders/{created['reminderId']}",
        json={"userId": random_text, "completed": False},
    )
    assume(res.json()["reminder"]["completed"] is False)


def test_update_validation(client: TestClient, random_text: str) -> None:
    created = _create(client, random_text)

    res = client.put(
        f"/reminders/{created['reminderId']}",
        json={"completed": True},
    )

    assume(res.status_code == HTTPStatus.BAD_REQUEST)
    assume(res.json()["error"]["message"] == "Validation error")
    reminders = client.get(f"/reminders/{random_text}").json()["reminders"]
    assume(reminders[0]["completed"] is False)


def test_update_not_found_or_unauthorized(client: TestClient, random_text: str) -> None:
    """
    A missing and a foreign reminder cannot be told apart.
    """
    created = _create(client, random_text)

    foreign = client.put(
        f"/reminders/{created['reminderId']}",
        json={"userId": "someone-else", "completed": True},
    )
    missing = client.put(
        "/reminders/missing",
        json={"userId": random_text, "completed": True},
    )

    assume(foreign.status_code == HTTPStatus.NOT_FOUND)
    assume(missing.status_code == HTTPStatus.NOT_FOUND)
    assume(foreign.json() == missing.json())
    assume(
        foreign.json()
        == {"error": {"details": [], "message": "Reminder not found or unauthorized"}}
    )


def test_delete(client: TestClient, random_text: str) -> None:
    created = _create(client, random_text)

    # Missing owner
    res = client.request("DELETE", f"/reminders/{created['reminderId']}", json={})
    assume(res.status_code == HTTPStatus.BAD_REQUEST)

    # Foreign owner
    res = client.request(
        "DELETE",
        f"/reminders/{created['reminderId']}",
        json={"userId": "someone-else"},
    )
    assume(res.status_code == HTTPStatus.NOT_FOUND)
    assume(len(client.get(f"/reminders/{random_text}").json()["reminders"]) == 1)

    # Owner
    res = client.request(
        "DELETE",
        f"/reminders/{created['reminderId']}",
        json={"userId": random_text},
    )
    assume(res.status_code == HTTPStatus.OK)
    assume(res.json() == {"message": "Reminder deleted successfully"})
    assume(client.get(f"/reminders/{random_text}").json()["reminders"] == [])

    # Already deleted
    res = client.request(
        "DELETE",
        f"/reminders/{created['reminderId']}",
        json={"userId": random_text},
    )
    assume(res.status_code == HTTPStatus.NOT_FOUND)


def test_list_by_organization(client: TestClient, random_text: str) -> None:
    store = CONFIG.database.instance
    patient = client.portal.call(seed_user, store, "Alice", random_text)
    caregiver = client.portal.call(
        seed_user, store, "Bob", random_text, "caregiver"
    )
    _create(client, patient, datetime="2024-01-02")
    _create(client, patient, datetime="2024-01-01")
    _create(client, caregiver, datetime="2024-01-01")

    res = client.get("/api/reminders/all", params={"organizationId": random_text})

    assume(res.status_code == HTTPStatus.OK)
    body = res.json()
    assume([reminder["datetime"] for reminder in body] == ["2024-01-01", "2024-01-02"])
    assume(all(reminder["userId"] == patient for reminder in body))

    # Organization without patients
    res = client.get("/api/reminders/all", params={"organizationId": "empty"})
    assume(res.status_code == HTTPStatus.OK)
    assume(res.json() == [])


def test_list_by_organization_validation(client: TestClient) -> None:
    res = client.get("/api/reminders/all")
    assume(res.status_code == HTTPStatus.BAD_REQUEST)
    assume(res.json()["error"]["message"] == "Validation error")


def test_unknown_route(client: TestClient) -> None:
    res = client.get("/unknown")
    assume(res.status_code == HTTPStatus.NOT_FOUND)
    assume(res.json() == {"error": {"details": [], "message": "Not Found"}})


@pytest.fixture
def store_client(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    reminders: ReminderAdapter,
) -> TestClient:
    """
    Client whose reminders are served from the recording store mock.
    """
    monkeypatch.setattr("app.main._reminders", reminders)
    return client


@pytest.mark.parametrize(
    "failure,method,path,body,message",
    [
        pytest.param(
            ("insert", "reminders"),
            "POST",
            "/reminders",
            {"userId": "u1", "title": "Take aspirin", "datetime": "2024-01-01"},
            "Failed to create reminder",
            id="create",
        ),
        pytest.param(
            ("query", "reminders"),
            "GET",
            "/reminders/u1",
            None,
            "Failed to fetch reminders",
            id="list",
        ),
        pytest.param(
            ("update", "reminders"),
            "PUT",
            "/reminders/{reminder_id}",
            {"userId": "u1", "completed": True},
            "Failed to update reminder",
            id="update",
        ),
        pytest.param(
            ("delete", "reminders"),
            "DELETE",
            "/reminders/{reminder_id}",
            {"userId": "u1"},
            "Failed to delete reminder",
            id="delete",
        ),
    ],
)
def test_store_error(  # noqa: PLR0913
    body: dict | None,
    failure: tuple[str, str],
    message: str,
    method: str,
    path: str,
    store: MemoryStoreMock,
    store_client: TestClient,
) -> None:
    """
    Store failures are answered with a 500 and the standard error envelope.
    """
    created = _create(store_client, "u1")
    store.failures.add(failure)

    res = store_client.request(
        method,
        path.format(reminder_id=created["reminderId"]),
        json=body,
    )

    assume(res.status_code == HTTPStatus.INTERNAL_SERVER_ERROR)
    assume(
        res.json()
        == {
            "error": {
                "details": [f"Simulated {failure[0]} failure on {failure[1]}"],
                "message": message,
            }
        }
    )


def test_list_by_organization_store_error(
    store: MemoryStoreMock,
    store_client: TestClient,
) -> None:
    """
    The organization listing fails closed.
    """
    patient = store_client.portal.call(seed_user, store, "Alice", "organization")
    _create(store_client, patient)
    store.failures.add(("query", "reminders"))

    res = store_client.get(
        "/api/reminders/all", params={"organizationId": "organization"}
    )

    assume(res.status_code == HTTPStatus.OK)
    assume(res.json() == [])
