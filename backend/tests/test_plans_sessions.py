from __future__ import annotations

from db.models import Notification, User


def _exercises(n: int) -> list[dict]:
    return [{"name": f"Move {i}", "sets": 3, "reps": 10} for i in range(n)]


def _plan_body(client_id: int, **overrides) -> dict:
    body = {
        "client_id": client_id,
        "title": "Strength base",
        "frequency_per_week": 3,
        "start_date": "2024-03-04T00:00:00Z",
        "end_date": "2024-04-28T00:00:00Z",
    }
    body.update(overrides)
    return body


def test_approved_trainer_creates_plan_and_client_is_notified(client, db, make_trainer, make_client, headers):
    trainer = make_trainer()
    profile = make_client(trainer=trainer)
    trainer_user = db.get(User, trainer.user_id)

    res = client.post("/api/plans", json=_plan_body(profile.id), headers=headers(trainer_user))
    assert res.status_code == 201, res.text
    assert res.json()["trainer_id"] == trainer.id
    assert res.json()["start_date"] == "2024-03-04T00:00:00Z"

    db.expire_all()
    types = [n.type for n in db.query(Notification).filter(Notification.recipient_id == profile.user_id)]
    assert types == ["NEW_PLAN"]


def test_plan_requires_currently_approved_trainer(client, db, make_user, make_trainer, make_client, headers):
    admin = make_user("ADMIN")
    profile = make_client()
    pending = make_trainer(review_status="PENDING")
    rejected = make_trainer(review_status="REJECTED")
    # A stale flag does not count; only the review status does.
    rejected.validated_by_admin = True
    db.commit()

    for trainer in (pending, rejected):
        res = client.post("/api/plans", json=_plan_body(profile.id, trainer_id=trainer.id), headers=headers(admin))
        assert res.status_code == 403, res.text


def test_trainer_cannot_create_plan_for_another_trainer(client, db, make_trainer, make_client, headers):
    mine = make_trainer()
    other = make_trainer()
    profile = make_client(trainer=mine)
    trainer_user = db.get(User, mine.user_id)
    res = client.post("/api/plans", json=_plan_body(profile.id, trainer_id=other.id), headers=headers(trainer_user))
    assert res.status_code == 403


def test_plan_validation(client, db, make_trainer, make_client, headers):
    trainer = make_trainer()
    profile = make_client(trainer=trainer)
    trainer_user = db.get(User, trainer.user_id)

    assert client.post("/api/plans", json=_plan_body(profile.id, frequency_per_week=6), headers=headers(trainer_user)).status_code == 400
    assert client.post(
        "/api/plans",
        json=_plan_body(profile.id, end_date="2024-03-01T00:00:00Z"),
        headers=headers(trainer_user),
    ).status_code == 400
    assert client.post("/api/plans", json=_plan_body(9999), headers=headers(trainer_user)).status_code == 404
    assert client.post("/api/plans", json=_plan_body(profile.id), headers=headers(profile.user)).status_code == 403


def test_exercise_cap_on_create_and_update(client, db, make_trainer, make_client, headers):
    trainer = make_trainer()
    profile = make_client(trainer=trainer)
    trainer_user = db.get(User, trainer.user_id)
    plan_id = client.post("/api/plans", json=_plan_body(profile.id), headers=headers(trainer_user)).json()["id"]

    ten = client.post(
        f"/api/plans/{plan_id}/sessions",
        json={"day_of_week": 1, "exercises": _exercises(10)},
        headers=headers(trainer_user),
    )
    assert ten.status_code == 201, ten.text
    assert len(ten.json()["exercises"]) == 10

    eleven = client.post(
        f"/api/plans/{plan_id}/sessions",
        json={"day_of_week": 2, "exercises": _exercises(11)},
        headers=headers(trainer_user),
    )
    assert eleven.status_code == 400

    session_id = ten.json()["id"]
    too_many = client.patch(
        f"/api/sessions/{session_id}", json={"exercises": _exercises(11)}, headers=headers(trainer_user)
    )
    assert too_many.status_code == 400
    fine = client.patch(f"/api/sessions/{session_id}", json={"exercises": _exercises(3)}, headers=headers(trainer_user))
    assert fine.status_code == 200
    assert len(fine.json()["exercises"]) == 3


def test_session_day_of_week_range(client, db, make_trainer, make_client, headers):
    trainer = make_trainer()
    profile = make_client(trainer=trainer)
    trainer_user = db.get(User, trainer.user_id)
    plan_id = client.post("/api/plans", json=_plan_body(profile.id), headers=headers(trainer_user)).json()["id"]
    res = client.post(f"/api/plans/{plan_id}/sessions", json={"day_of_week": 7}, headers=headers(trainer_user))
    assert res.status_code == 400


def test_plan_visibility_is_scoped_by_role(client, db, make_trainer, make_client, headers):
    trainer = make_trainer()
    profile = make_client(trainer=trainer)
    outsider = make_client()
    trainer_user = db.get(User, trainer.user_id)
    plan_id = client.post("/api/plans", json=_plan_body(profile.id), headers=headers(trainer_user)).json()["id"]
    client.post(f"/api/plans/{plan_id}/sessions", json={"day_of_week": 3, "exercises": _exercises(2)}, headers=headers(trainer_user))

    mine = client.get(f"/api/plans/{plan_id}", headers=headers(profile.user))
    assert mine.status_code == 200
    assert len(mine.json()["sessions"]) == 1

    assert client.get(f"/api/plans/{plan_id}", headers=headers(outsider.user)).status_code == 403
    listing = client.get("/api/plans", headers=headers(outsider.user)).json()
    assert listing["total"] == 0
    assert listing["limit"] == 20


def test_reassigning_plan_rechecks_approval(client, db, make_user, make_trainer, make_client, headers):
    admin = make_user("ADMIN")
    trainer = make_trainer()
    pending = make_trainer(review_status="PENDING")
    profile = make_client(trainer=trainer)
    plan_id = client.post(
        "/api/plans", json=_plan_body(profile.id, trainer_id=trainer.id), headers=headers(admin)
    ).json()["id"]

    res = client.patch(f"/api/plans/{plan_id}", json={"trainer_id": pending.id}, headers=headers(admin))
    assert res.status_code == 403
