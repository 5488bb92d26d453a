from __future__ import annotations

from datetime import datetime

from db.models import CompletionLog, User
from services import stats_service
from utils.pagination import clamp_page


def _log(db, profile, trainer, day: datetime, status: str = "DONE", session_id: int = 1) -> None:
    db.add(
        CompletionLog(
            client_id=profile.id,
            trainer_id=trainer.id,
            plan_id=1,
            session_id=session_id,
            date=day,
            status=status,
        )
    )
    db.commit()


def test_group_by_week_uses_iso_weeks_across_year_boundary():
    dates = [datetime(2024, 12, 30), datetime(2025, 1, 2), datetime(2024, 12, 29)]
    assert stats_service.group_by_week(dates) == [
        {"year": 2024, "week": 52, "total_completions": 1},
        {"year": 2025, "week": 1, "total_completions": 2},
    ]


def test_group_by_month_orders_oldest_first():
    dates = [datetime(2024, 3, 9), datetime(2024, 1, 5), datetime(2024, 3, 1)]
    assert stats_service.group_by_month(dates) == [
        {"year": 2024, "month": 1, "total_completions": 1},
        {"year": 2024, "month": 3, "total_completions": 2},
    ]


def test_clamp_page_bounds():
    assert clamp_page(None, None, default=20, maximum=100) == (1, 20)
    assert clamp_page(0, 500, default=20, maximum=100) == (1, 100)
    assert clamp_page("3", "-4", default=20, maximum=100) == (3, 1)
    assert clamp_page("x", "y", default=6, maximum=50) == (1, 6)


def test_admin_overview_counts(client, db, make_user, make_trainer, make_client, headers):
    admin = make_user("ADMIN")
    trainer = make_trainer()
    make_trainer(review_status="PENDING")
    profile = make_client(trainer=trainer)
    _log(db, profile, trainer, datetime(2024, 3, 1))
    _log(db, profile, trainer, datetime(2024, 3, 2), session_id=2)
    _log(db, profile, trainer, datetime(2024, 4, 2), status="MISSED")

    res = client.get("/api/stats/admin/overview", headers=headers(admin))
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["total_users"] == 4
    assert body["total_trainers"] == 1
    assert body["total_clients"] == 1
    assert body["pending_applications"] == 1
    assert body["total_workouts_completed"] == 2
    assert body["total_workouts_missed"] == 1
    assert body["monthly_activity"] == [{"year": 2024, "month": 3, "total_completions": 2}]
    assert body["monthly_missed"] == [{"year": 2024, "month": 4, "total_completions": 1}]

    assert client.get("/api/stats/admin/overview", headers=headers(profile.user)).status_code == 403


def test_personal_stats_are_scoped_to_caller(client, db, make_trainer, make_client, headers):
    trainer = make_trainer()
    mine = make_client(trainer=trainer)
    other = make_client(trainer=trainer)
    _log(db, mine, trainer, datetime(2024, 3, 4))
    _log(db, other, trainer, datetime(2024, 3, 5))

    res = client.get("/api/stats/my/weekly", headers=headers(mine.user))
    assert res.json() == [{"year": 2024, "week": 10, "total_completions": 1}]

    # A client cannot widen the scope with a query parameter.
    res = client.get(
        "/api/stats/completions/monthly", params={"clientId": other.id}, headers=headers(mine.user)
    )
    assert res.json() == [{"year": 2024, "month": 3, "total_completions": 1}]

    trainer_user = db.get(User, trainer.user_id)
    res = client.get("/api/stats/my/monthly", headers=headers(trainer_user))
    assert res.json() == [{"year": 2024, "month": 3, "total_completions": 2}]

    assert client.get("/api/stats/my/daily", headers=headers(mine.user)).status_code == 404
