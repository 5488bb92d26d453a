from __future__ import annotations

import pytest

from db.models import ClientProfile, Notification, User
from services import notification_service


def test_notify_rejects_unknown_type_and_recipient(db, make_user):
    user = make_user("CLIENT")
    with pytest.raises(ValueError):
        notification_service.notify(db, user.id, "BIRTHDAY", {})
    with pytest.raises(ValueError):
        notification_service.notify(db, 9999, "ALERT", {})


def test_notify_admins_skips_inactive(db, make_user):
    active = make_user("ADMIN")
    make_user("ADMIN", active=False)
    rows = notification_service.notify_admins(db, "ALERT", {"message": "hello"})
    db.commit()
    assert [r.recipient_id for r in rows] == [active.id]


def test_rollback_discards_queued_pushes(db, make_user):
    user = make_user("CLIENT")
    notification_service.notify(db, user.id, "ALERT", {"message": "draft"})
    assert db.info.get("realtime_outbox")
    db.rollback()
    assert not db.info.get("realtime_outbox")
    assert db.query(Notification).count() == 0


def test_listing_and_read_state(client, db, make_user, headers):
    user = make_user("CLIENT")
    other = make_user("CLIENT")
    for i in range(3):
        notification_service.notify(db, user.id, "ALERT", {"message": f"n{i}"})
    foreign = notification_service.notify(db, other.id, "ALERT", {"message": "not yours"})
    db.commit()

    listing = client.get("/api/notifications", headers=headers(user)).json()
    assert listing["total"] == 3
    assert listing["unread"] == 3

    first_id = listing["items"][0]["id"]
    read = client.post(f"/api/notifications/{first_id}/read", headers=headers(user))
    assert read.status_code == 200
    assert read.json()["is_read"] is True
    assert client.post(f"/api/notifications/{foreign.id}/read", headers=headers(user)).status_code == 404

    unread_only = client.get("/api/notifications", params={"only_unread": True}, headers=headers(user)).json()
    assert unread_only["total"] == 2

    assert client.post("/api/notifications/read-all", headers=headers(user)).json() == {"updated": 2}
    assert client.get("/api/notifications", headers=headers(user)).json()["unread"] == 0


def test_trainer_alerts_only_reach_own_clients(client, db, make_trainer, make_client, headers):
    trainer = make_trainer()
    mine = make_client(trainer=trainer)
    stranger = make_client()
    trainer_user = db.get(User, trainer.user_id)

    ok = client.post(
        "/api/notifications/alerts", json={"client_id": mine.id, "message": "Hydrate"}, headers=headers(trainer_user)
    )
    assert ok.status_code == 201, ok.text
    assert ok.json()["type"] == "ALERT"
    assert ok.json()["payload"]["message"] == "Hydrate"

    denied = client.post(
        "/api/notifications/alerts", json={"client_id": stranger.id, "message": "Hi"}, headers=headers(trainer_user)
    )
    assert denied.status_code == 403


def test_body_metrics_update_current_values(client, db, make_client, headers):
    profile = make_client()
    auth = headers(profile.user)

    assert client.post("/api/body-metrics", json={}, headers=auth).status_code == 400
    res = client.post("/api/body-metrics", json={"weight": 72.5}, headers=auth)
    assert res.status_code == 201
    client.post("/api/body-metrics", json={"muscle_mass": 41.0}, headers=auth)

    current = client.get("/api/body-metrics/current", headers=auth).json()
    assert current == {"current_weight": 72.5, "current_muscle_mass": 41.0}
    assert len(client.get("/api/body-metrics", headers=auth).json()) == 2

    db.expire_all()
    assert db.get(ClientProfile, profile.id).current_weight == 72.5
