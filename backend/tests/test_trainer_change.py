from __future__ import annotations

from db.models import ClientProfile, Notification, TrainerChangeRequest, User


def _types_for(db, user_id: int) -> list[str]:
    db.expire_all()
    return [n.type for n in db.query(Notification).filter(Notification.recipient_id == user_id).order_by(Notification.id)]


def test_request_creates_profile_lazily_and_alerts_admins(client, db, make_user, make_trainer, headers):
    admin = make_user("ADMIN")
    trainer = make_trainer()
    user = make_user("CLIENT")

    res = client.post(
        "/api/trainer-requests",
        json={"requested_trainer_id": trainer.id, "reason": "Closer to home"},
        headers=headers(user),
    )
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["status"] == "PENDING"
    assert body["current_trainer_id"] is None

    db.expire_all()
    profile = db.query(ClientProfile).filter(ClientProfile.user_id == user.id).one()
    assert profile.trainer_id is None
    assert _types_for(db, admin.id) == ["TRAINER_CHANGE_REQUEST"]


def test_second_pending_request_conflicts(client, db, make_trainer, make_client, headers):
    current = make_trainer()
    first_choice = make_trainer()
    second_choice = make_trainer()
    profile = make_client(trainer=current)

    ok = client.post(
        "/api/trainer-requests", json={"requested_trainer_id": first_choice.id}, headers=headers(profile.user)
    )
    assert ok.status_code == 201
    assert ok.json()["current_trainer_id"] == current.id

    conflict = client.post(
        "/api/trainer-requests", json={"requested_trainer_id": second_choice.id}, headers=headers(profile.user)
    )
    assert conflict.status_code == 409
    db.expire_all()
    assert db.query(TrainerChangeRequest).filter(TrainerChangeRequest.status == "PENDING").count() == 1


def test_requested_trainer_must_be_approved_and_different(client, make_trainer, make_client, headers):
    current = make_trainer()
    pending = make_trainer(review_status="PENDING")
    profile = make_client(trainer=current)

    res = client.post("/api/trainer-requests", json={"requested_trainer_id": pending.id}, headers=headers(profile.user))
    assert res.status_code == 400

    res = client.post("/api/trainer-requests", json={"requested_trainer_id": current.id}, headers=headers(profile.user))
    assert res.status_code == 400

    res = client.post("/api/trainer-requests", json={"requested_trainer_id": 4242}, headers=headers(profile.user))
    assert res.status_code == 400


def test_approval_reassigns_client_and_notifies_both_sides(client, db, make_user, make_trainer, make_client, headers):
    admin = make_user("ADMIN")
    old = make_trainer()
    new = make_trainer()
    profile = make_client(trainer=old)
    created = client.post(
        "/api/trainer-requests", json={"requested_trainer_id": new.id}, headers=headers(profile.user)
    ).json()

    # The new trainer's role had lapsed; approval restores it.
    new_user = db.get(User, new.user_id)
    new_user.role = "CLIENT"
    db.commit()

    res = client.patch(f"/api/trainer-requests/{created['id']}", json={"status": "APPROVED"}, headers=headers(admin))
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "APPROVED"
    assert res.json()["decided_by_admin_id"] == admin.id

    db.expire_all()
    assert db.get(ClientProfile, profile.id).trainer_id == new.id
    assert db.get(User, new.user_id).role == "TRAINER"
    assert _types_for(db, new.user_id) == ["NEW_CLIENT"]
    assert _types_for(db, profile.user_id) == ["TRAINER_CHANGE_DECIDED"]


def test_rejection_only_notifies_client_and_decisions_are_final(client, db, make_user, make_trainer, make_client, headers):
    admin = make_user("ADMIN")
    old = make_trainer()
    new = make_trainer()
    profile = make_client(trainer=old)
    created = client.post(
        "/api/trainer-requests", json={"requested_trainer_id": new.id}, headers=headers(profile.user)
    ).json()

    res = client.patch(f"/api/trainer-requests/{created['id']}", json={"status": "REJECTED"}, headers=headers(admin))
    assert res.status_code == 200
    db.expire_all()
    assert db.get(ClientProfile, profile.id).trainer_id == old.id
    assert _types_for(db, new.user_id) == []
    assert _types_for(db, profile.user_id) == ["TRAINER_CHANGE_DECIDED"]

    again = client.patch(f"/api/trainer-requests/{created['id']}", json={"status": "APPROVED"}, headers=headers(admin))
    assert again.status_code == 400


def test_decide_validates_status_and_existence(client, make_user, headers):
    admin = make_user("ADMIN")
    assert client.patch("/api/trainer-requests/77", json={"status": "MAYBE"}, headers=headers(admin)).status_code == 400
    assert client.patch("/api/trainer-requests/77", json={"status": "APPROVED"}, headers=headers(admin)).status_code == 404
