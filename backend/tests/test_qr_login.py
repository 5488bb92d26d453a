from __future__ import annotations

from datetime import timedelta

from auth.utils import decode_access_token
from db.models import QrLoginToken
from utils.datetime_utils import utcnow


def _token(db, code: str) -> QrLoginToken | None:
    db.expire_all()
    return db.query(QrLoginToken).filter(QrLoginToken.code == code).first()


def _expire(db, code: str) -> None:
    row = _token(db, code)
    row.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()


def test_device_approval_flow_is_single_use(client, db, make_user, headers):
    user = make_user("CLIENT")
    started = client.post("/api/auth/qr/start")
    assert started.status_code == 201
    code = started.json()["code"]
    assert started.json()["status"] == "PENDING"
    assert len(code) == 40

    assert client.get("/api/auth/qr/poll", params={"code": code}).json() == {"status": "PENDING"}

    approved = client.post("/api/auth/qr/approve", json={"code": code}, headers=headers(user))
    assert approved.status_code == 200, approved.text

    consumed = client.get("/api/auth/qr/poll", params={"code": code})
    assert consumed.status_code == 200
    body = consumed.json()
    assert body["status"] == "APPROVED"
    assert body["user"]["id"] == user.id
    assert decode_access_token(body["access_token"])["sub"] == str(user.id)
    assert _token(db, code) is None

    again = client.get("/api/auth/qr/poll", params={"code": code})
    assert again.status_code == 404


def test_poll_after_expiry_stamps_expired_and_returns_gone(client, db):
    code = client.post("/api/auth/qr/start").json()["code"]
    _expire(db, code)

    res = client.get("/api/auth/qr/poll", params={"code": code})
    assert res.status_code == 410
    assert res.json()["status"] == "EXPIRED"
    assert res.json()["message"]
    assert _token(db, code).status == "EXPIRED"


def test_approved_but_expired_token_is_not_overwritten(client, db, make_user, headers):
    user = make_user("CLIENT")
    code = client.post("/api/auth/qr/start").json()["code"]
    client.post("/api/auth/qr/approve", json={"code": code}, headers=headers(user))
    _expire(db, code)

    res = client.get("/api/auth/qr/poll", params={"code": code})
    assert res.status_code == 410
    assert _token(db, code).status == "APPROVED"


def test_rejected_login_polls_forbidden(client, make_user, headers):
    user = make_user("CLIENT")
    code = client.post("/api/auth/qr/start").json()["code"]
    assert client.post("/api/auth/qr/reject", json={"code": code}, headers=headers(user)).status_code == 200

    res = client.get("/api/auth/qr/poll", params={"code": code})
    assert res.status_code == 403
    assert res.json()["status"] == "REJECTED"


def test_approve_guards(client, db, make_user, headers):
    user = make_user("CLIENT")
    assert client.post("/api/auth/qr/approve", json={"code": "nope"}, headers=headers(user)).status_code == 404

    code = client.post("/api/auth/qr/start").json()["code"]
    assert client.post("/api/auth/qr/approve", json={"code": code}).status_code == 401
    client.post("/api/auth/qr/approve", json={"code": code}, headers=headers(user))
    assert client.post("/api/auth/qr/approve", json={"code": code}, headers=headers(user)).status_code == 400

    stale = client.post("/api/auth/qr/start").json()["code"]
    _expire(db, stale)
    assert client.post("/api/auth/qr/approve", json={"code": stale}, headers=headers(user)).status_code == 410
    assert _token(db, stale).status == "EXPIRED"


def test_self_share_flow_is_single_use_and_retires_previous_code(client, db, make_user, headers):
    user = make_user("CLIENT")
    first = client.post("/api/auth/qr/generate", headers=headers(user)).json()
    assert first["status"] == "APPROVED"
    second = client.post("/api/auth/qr/generate", headers=headers(user)).json()

    assert _token(db, first["code"]).status == "EXPIRED"
    assert client.post("/api/auth/qr/scan-login", json={"code": first["code"]}).status_code == 400

    ok = client.post("/api/auth/qr/scan-login", json={"code": second["code"]})
    assert ok.status_code == 200, ok.text
    assert ok.json()["user"]["id"] == user.id
    assert client.post("/api/auth/qr/scan-login", json={"code": second["code"]}).status_code == 404


def test_scan_login_after_expiry_is_gone(client, db, make_user, headers):
    user = make_user("CLIENT")
    code = client.post("/api/auth/qr/generate", headers=headers(user)).json()["code"]
    _expire(db, code)
    res = client.post("/api/auth/qr/scan-login", json={"code": code})
    assert res.status_code == 410
    assert _token(db, code).status == "EXPIRED"


def test_codes_do_not_cross_flows(client, make_user, headers):
    user = make_user("CLIENT")
    device_code = client.post("/api/auth/qr/start").json()["code"]
    share_code = client.post("/api/auth/qr/generate", headers=headers(user)).json()["code"]

    assert client.post("/api/auth/qr/scan-login", json={"code": device_code}).status_code == 404
    assert client.get("/api/auth/qr/poll", params={"code": share_code}).status_code == 404
    assert client.post("/api/auth/qr/approve", json={"code": share_code}, headers=headers(user)).status_code == 404


def test_reject_withdraws_an_approval_before_it_is_polled(client, db, make_user, headers):
    user = make_user("CLIENT")
    code = client.post("/api/auth/qr/start").json()["code"]
    assert client.post("/api/auth/qr/approve", json={"code": code}, headers=headers(user)).status_code == 200

    rejected = client.post("/api/auth/qr/reject", json={"code": code}, headers=headers(user))
    assert rejected.status_code == 200, rejected.text
    assert _token(db, code).status == "REJECTED"

    res = client.get("/api/auth/qr/poll", params={"code": code})
    assert res.status_code == 403
    assert res.json()["status"] == "REJECTED"
    assert "access_token" not in res.json()
