"""
FieldTrack - Messaging Tests
"""

import pytest

from tests.conftest import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    ENGINEER_EMAIL,
    ENGINEER_PASSWORD,
    INSPECTOR_EMAIL,
    INSPECTOR_PASSWORD,
    login_headers,
)


@pytest.fixture
def admin_headers(client, admin):
    return login_headers(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def inspector_headers(client, inspector):
    return login_headers(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)


def _send(client, headers, recipient_id, body="Route blocked near Chinchiná", **extra):
    return client.post("/api/v1/messages", json={"recipient_id": str(recipient_id), "body": body, **extra},
                       headers=headers)


class TestSending:

    def test_user_writes_to_admin(self, client, inspector_headers, admin):
        response = _send(client, inspector_headers, admin.id, kind="alert")

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["subject"] == "No subject"
        assert data["kind"] == "alert"
        assert data["is_read"] is False

    def test_user_cannot_write_to_user(self, client, inspector_headers, engineer):
        response = _send(client, inspector_headers, engineer.id)

        assert response.status_code == 403

    def test_admin_writes_to_anyone(self, client, admin_headers, engineer):
        assert _send(client, admin_headers, engineer.id, subject="Schedule").status_code == 201

    def test_unknown_recipient(self, client, admin_headers):
        response = _send(client, admin_headers, "00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404

    def test_blank_body_rejected(self, client, inspector_headers, admin):
        response = _send(client, inspector_headers, admin.id, body="   ")

        assert response.status_code == 400
        assert response.json()["fields"] == ["body"]


class TestInbox:

    def test_inbox_and_unread_count(self, client, inspector_headers, admin_headers, admin):
        _send(client, inspector_headers, admin.id)
        _send(client, inspector_headers, admin.id, body="Second")

        response = client.get("/api/v1/messages", headers=admin_headers)

        body = response.json()
        assert body["pagination"]["total"] == 2
        assert body["unread"] == 2

    def test_reading_marks_read(self, client, inspector_headers, admin_headers, admin):
        message_id = _send(client, inspector_headers, admin.id).json()["data"]["id"]

        response = client.get(f"/api/v1/messages/{message_id}", headers=admin_headers)

        assert response.json()["data"]["is_read"] is True
        assert client.get("/api/v1/messages", headers=admin_headers).json()["unread"] == 0

    def test_only_recipient_reads(self, client, inspector_headers, admin):
        message_id = _send(client, inspector_headers, admin.id).json()["data"]["id"]

        response = client.get(f"/api/v1/messages/{message_id}", headers=inspector_headers)

        assert response.status_code == 403

    def test_mark_all_read(self, client, inspector_headers, admin_headers, admin):
        _send(client, inspector_headers, admin.id)
        _send(client, inspector_headers, admin.id, body="Second")

        response = client.put("/api/v1/messages/mark-all-read", headers=admin_headers)

        assert response.json()["updated"] == 2
        unread = client.get("/api/v1/messages", params={"read": False}, headers=admin_headers).json()
        assert unread["data"] == []

    def test_delete_hides_message(self, client, inspector_headers, admin_headers, admin):
        message_id = _send(client, inspector_headers, admin.id).json()["data"]["id"]

        assert client.delete(f"/api/v1/messages/{message_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/v1/messages/{message_id}", headers=admin_headers).status_code == 404
        assert client.get("/api/v1/messages", headers=admin_headers).json()["pagination"]["total"] == 0


class TestAdminViews:

    def test_admin_all_includes_sent_and_received(self, client, inspector_headers, admin_headers, admin, engineer):
        _send(client, inspector_headers, admin.id)
        _send(client, admin_headers, engineer.id)

        response = client.get("/api/v1/messages/admin/all", headers=admin_headers)

        assert response.json()["pagination"]["total"] == 2

    def test_admin_user_traffic(self, client, admin_headers, inspector_headers, inspector, engineer, admin):
        _send(client, inspector_headers, admin.id)
        _send(client, admin_headers, engineer.id)
        engineer_headers = login_headers(client, ENGINEER_EMAIL, ENGINEER_PASSWORD)
        _send(client, engineer_headers, admin.id)

        response = client.get(f"/api/v1/messages/admin/user/{inspector.id}", headers=admin_headers)

        assert response.json()["pagination"]["total"] == 1
