"""Integration tests for notification API endpoints."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest


@pytest.fixture
def inbox(fanout, auth_headers, user_ids):
    """Headers for the first seeded user plus a helper to deliver to them."""
    headers, user_id = auth_headers(user_id=user_ids[0])

    async def deliver(notification_type="SUBMISSION_REJECTED", **payload):
        payload.setdefault("challenge_title", "Plank")
        await fanout.notify_user(user_id, notification_type, payload, entity_id=uuid4())
        await fanout.after_commit()

    return headers, user_id, deliver


def _run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestListNotifications:
    def test_requires_auth(self, client):
        assert client.get("/api/notifications").status_code == 401

    def test_lists_own_notifications_newest_first(self, client, inbox, clock, auth_headers):
        headers, user_id, deliver = inbox
        _run(deliver(challenge_title="First"))
        clock.advance(minutes=5)
        _run(deliver("SUBMISSION_APPROVED", challenge_title="Second", score=90))

        data = client.get("/api/notifications", headers=headers).json()

        assert data["total"] == 2
        assert data["unread_count"] == 2
        assert [n["notification_type"] for n in data["items"]] == [
            "SUBMISSION_APPROVED",
            "SUBMISSION_REJECTED",
        ]
        assert data["items"][0]["body"] == "Your entry to 'Second' was approved with a score of 90."

        other, _ = auth_headers()
        assert client.get("/api/notifications", headers=other).json()["total"] == 0

    def test_filters_by_type_and_read_state(self, client, inbox):
        headers, _, deliver = inbox
        _run(deliver())
        _run(deliver("SUBMISSION_APPROVED", score=10))

        by_type = client.get("/api/notifications", params={"type": "SUBMISSION_APPROVED"}, headers=headers)
        read_only = client.get("/api/notifications", params={"is_read": True}, headers=headers)

        assert by_type.json()["total"] == 1
        assert read_only.json()["total"] == 0

    def test_unknown_type_rejected(self, client, inbox):
        headers, _, _ = inbox

        response = client.get("/api/notifications", params={"type": "CHALLENGE_EXPIRING"}, headers=headers)

        assert response.status_code == 422


class TestReadState:
    def test_unread_count_tracks_writes(self, client, inbox):
        headers, _, deliver = inbox
        assert client.get("/api/notifications/unread-count", headers=headers).json() == {"count": 0}

        _run(deliver())
        _run(deliver())

        assert client.get("/api/notifications/unread-count", headers=headers).json() == {"count": 2}

    def test_mark_one_read_and_unread(self, client, inbox):
        headers, _, deliver = inbox
        _run(deliver())
        notification_id = client.get("/api/notifications", headers=headers).json()["items"][0]["id"]
        url = f"/api/notifications/{notification_id}"

        read = client.patch(url, json={"is_read": True}, headers=headers)
        count_after_read = client.get("/api/notifications/unread-count", headers=headers).json()["count"]
        unread = client.patch(url, json={"is_read": False}, headers=headers)

        assert read.json()["is_read"] is True
        assert read.json()["read_at"] is not None
        assert count_after_read == 0
        assert unread.json()["is_read"] is False
        assert unread.json()["read_at"] is None

    def test_mark_all_read(self, client, inbox, db_session):
        headers, _, deliver = inbox
        for _ in range(3):
            _run(deliver())

        response = client.patch("/api/notifications/mark-all/read", headers=headers)

        assert response.json() == {"updated": 3}
        db_session.commit.assert_awaited()
        assert client.get("/api/notifications/unread-count", headers=headers).json()["count"] == 0

    def test_cached_count_cleared_only_after_commit(self, client, inbox, db_session, unread_cache):
        headers, user_id, deliver = inbox
        _run(deliver())
        assert client.get("/api/notifications/unread-count", headers=headers).json()["count"] == 1
        cached_at_commit = []

        async def commit():
            cached_at_commit.append(await unread_cache.get(user_id))

        db_session.commit.side_effect = commit

        client.patch("/api/notifications/mark-all/read", headers=headers)

        assert cached_at_commit == [1]
        assert _run(unread_cache.get(user_id)) is None
        assert client.get("/api/notifications/unread-count", headers=headers).json()["count"] == 0


class TestOwnership:
    def test_other_users_notification_is_forbidden(self, client, inbox, auth_headers):
        headers, _, deliver = inbox
        _run(deliver())
        notification_id = client.get("/api/notifications", headers=headers).json()["items"][0]["id"]
        stranger, _ = auth_headers()

        assert client.get(f"/api/notifications/{notification_id}", headers=stranger).status_code == 403
        assert client.delete(f"/api/notifications/{notification_id}", headers=stranger).status_code == 403

    def test_delete_own(self, client, inbox):
        headers, _, deliver = inbox
        _run(deliver())
        notification_id = client.get("/api/notifications", headers=headers).json()["items"][0]["id"]

        deleted = client.delete(f"/api/notifications/{notification_id}", headers=headers)
        missing = client.get(f"/api/notifications/{notification_id}", headers=headers)

        assert deleted.status_code == 200
        assert missing.status_code == 404
        assert missing.json()["error_code"] == "NOT_FOUND"
