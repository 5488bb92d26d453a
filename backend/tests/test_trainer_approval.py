from __future__ import annotations

import json

from sqlalchemy import event

from db.models import Notification, TrainerProfile, User


def _notifications(db, user_id: int, type_: str | None = None) -> list[Notification]:
    db.expire_all()
    q = db.query(Notification).filter(Notification.recipient_id == user_id)
    if type_:
        q = q.filter(Notification.type == type_)
    return q.all()


def test_register_with_trainer_request_stays_client_and_alerts_every_admin(client, db, make_user):
    admin_a = make_user("ADMIN")
    admin_b = make_user("ADMIN")
    make_user("ADMIN", active=False)

    res = client.post(
        "/api/auth/register",
        json={
            "username": "coachkim",
            "email": "kim@example.com",
            "password": "secret123",
            "first_name": "Kim",
            "last_name": "Lee",
            "wants_trainer": True,
            "certification": "NSCA-CPT",
            "specialties": "strength, mobility ,",
        },
    )
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["user"]["role"] == "CLIENT"
    assert body["access_token"] and body["refresh_token"]

    profile = db.query(TrainerProfile).filter(TrainerProfile.user_id == body["user"]["id"]).one()
    assert profile.review_status == "PENDING"
    assert profile.validated_by_admin is False
    assert json.loads(profile.specialties) == ["strength", "mobility"]

    for admin in (admin_a, admin_b):
        alerts = _notifications(db, admin.id, "ALERT")
        assert len(alerts) == 1
        assert json.loads(alerts[0].payload)["request"] == "TRAINER_VALIDATION"
    assert db.query(Notification).count() == 2


def test_admin_approval_promotes_role_and_notifies_once(client, db, make_user, make_trainer, headers):
    admin = make_user("ADMIN")
    application = make_trainer(review_status="PENDING")
    applicant_id = application.user_id

    res = client.patch(f"/api/trainers/{application.id}/validate", headers=headers(admin))
    assert res.status_code == 200, res.text
    assert res.json()["review_status"] == "APPROVED"
    assert res.json()["validated_by_admin"] is True

    db.expire_all()
    assert db.get(User, applicant_id).role == "TRAINER"
    assert len(_notifications(db, applicant_id, "TRAINER_APPROVED")) == 1


def test_rejecting_previously_approved_trainer_resets_role(client, db, make_user, make_trainer, headers):
    admin = make_user("ADMIN")
    application = make_trainer(review_status="APPROVED")

    res = client.patch(
        f"/api/trainers/{application.id}/reject", json={"reason": "Expired certificate"}, headers=headers(admin)
    )
    assert res.status_code == 200, res.text
    data = res.json()
    assert data["review_status"] == "REJECTED"
    assert data["validated_by_admin"] is False
    assert data["validated_at"] is None
    assert data["rejection_reason"] == "Expired certificate"

    db.expire_all()
    assert db.get(User, application.user_id).role == "CLIENT"
    rejected = _notifications(db, application.user_id, "TRAINER_REJECTED")
    assert json.loads(rejected[0].payload)["reason"] == "Expired certificate"


def test_approve_unknown_application_is_not_found(client, make_user, headers):
    admin = make_user("ADMIN")
    res = client.patch("/api/trainers/999/validate", headers=headers(admin))
    assert res.status_code == 404
    assert res.json() == {"message": "Trainer not found"}


def test_non_admin_cannot_review(client, make_user, make_trainer, headers):
    application = make_trainer(review_status="PENDING")
    res = client.patch(f"/api/trainers/{application.id}/validate", headers=headers(make_user("CLIENT")))
    assert res.status_code == 403


def test_apply_conflicts_while_pending_and_reopens_after_rejection(client, db, make_user, headers):
    admin = make_user("ADMIN")
    applicant = make_user("CLIENT")

    first = client.post("/api/trainers/apply", json={"certification": "ACE"}, headers=headers(applicant))
    assert first.status_code == 201, first.text
    trainer_id = first.json()["id"]

    again = client.post("/api/trainers/apply", json={"certification": "ACE"}, headers=headers(applicant))
    assert again.status_code == 409

    client.patch(f"/api/trainers/{trainer_id}/reject", json={"reason": "Missing docs"}, headers=headers(admin))
    reopened = client.post(
        "/api/trainers/apply",
        json={"certification": "ACE", "document_url": "https://files.example.com/ace.pdf"},
        headers=headers(applicant),
    )
    assert reopened.status_code == 201, reopened.text
    assert reopened.json()["id"] == trainer_id
    assert reopened.json()["review_status"] == "PENDING"
    assert reopened.json()["rejection_reason"] is None
    assert reopened.json()["document_urls"] == ["https://files.example.com/ace.pdf"]


def test_public_listing_only_shows_approved_trainers(client, make_trainer, make_client):
    approved = make_trainer(review_status="APPROVED")
    make_trainer(review_status="PENDING")
    make_trainer(review_status="REJECTED")
    make_client(trainer=approved)

    res = client.get("/api/trainers/public")
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 1
    assert body["limit"] == 6
    assert body["items"][0]["id"] == approved.id
    assert body["items"][0]["client_count"] == 1


def test_admin_created_trainer_gets_approved_application(client, db, make_user, headers):
    admin = make_user("ADMIN")
    res = client.post(
        "/api/users",
        json={"username": "coachmax", "email": "max@example.com", "password": "secret123", "role": "TRAINER"},
        headers=headers(admin),
    )
    assert res.status_code == 201, res.text
    profile = db.query(TrainerProfile).filter(TrainerProfile.user_id == res.json()["id"]).one()
    assert profile.review_status == "APPROVED"
    assert profile.validated_by_admin is True


def test_trainer_profile_update_cannot_touch_review_state(client, db, make_trainer, headers):
    application = make_trainer(review_status="APPROVED")
    user = db.get(User, application.user_id)
    res = client.put(
        "/api/trainers/me",
        json={"hourly_rate": 45.0, "review_status": "REJECTED", "validated_by_admin": False},
        headers=headers(user),
    )
    assert res.status_code == 200, res.text
    assert res.json()["hourly_rate"] == 45.0
    assert res.json()["review_status"] == "APPROVED"


def test_approval_survives_a_failed_notification_insert(client, db, make_user, make_trainer, headers):
    admin = make_user("ADMIN")
    application = make_trainer(review_status="PENDING")

    def _refuse(mapper, connection, target):
        raise RuntimeError("notifications table unavailable")

    event.listen(Notification, "before_insert", _refuse)
    try:
        res = client.patch(f"/api/trainers/{application.id}/validate", headers=headers(admin))
    finally:
        event.remove(Notification, "before_insert", _refuse)

    assert res.status_code == 200, res.text
    db.expire_all()
    assert db.get(TrainerProfile, application.id).review_status == "APPROVED"
    assert db.get(User, application.user_id).role == "TRAINER"
    assert db.query(Notification).count() == 0
