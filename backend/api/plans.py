from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user, require_admin, require_roles
from db.database import get_db
from db.models import User
from services import plan_service
from utils.pagination import clamp_page, paginate

router = APIRouter(tags=["plans"])


class Exercise(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    sets: int = Field(ge=1)
    reps: int = Field(ge=1)
    notes: Optional[str] = Field(default=None, max_length=1000)
    media_url: Optional[str] = None


class PlanCreateRequest(BaseModel):
    client_id: int
    trainer_id: Optional[int] = None
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    frequency_per_week: int
    start_date: datetime
    end_date: Optional[datetime] = None


class PlanUpdateRequest(BaseModel):
    trainer_id: Optional[int] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    frequency_per_week: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SessionCreateRequest(BaseModel):
    day_of_week: int
    order_index: int = 0
    notes: Optional[str] = None
    exercises: list[Exercise] = []


class SessionUpdateRequest(BaseModel):
    day_of_week: Optional[int] = None
    order_index: Optional[int] = None
    notes: Optional[str] = None
    exercises: Optional[list[Exercise]] = None


class CompletionRequest(BaseModel):
    client_id: Optional[int] = None
    trainer_id: Optional[int] = None
    plan_id: int
    session_id: int
    date: datetime
    status: str
    reason: Optional[str] = Field(default=None, max_length=1000)
    proof_image: Optional[str] = None


# --- Plans ---

@router.get("/plans")
def list_plans(
    client_id: Optional[int] = Query(default=None, alias="clientId"),
    trainer_id: Optional[int] = Query(default=None, alias="trainerId"),
    page: int = Query(default=1),
    limit: int = Query(default=20),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page, limit = clamp_page(page, limit, default=20, maximum=100)
    query = plan_service.list_plans(db, user, client_id=client_id, trainer_id=trainer_id)
    return paginate(query, page, limit, plan_service.serialize_plan)


@router.post("/plans", status_code=status.HTTP_201_CREATED)
def create_plan(
    req: PlanCreateRequest,
    user: User = Depends(require_roles("TRAINER", "ADMIN")),
    db: Session = Depends(get_db),
):
    plan = plan_service.create_plan(db, user, req.model_dump())
    db.commit()
    db.refresh(plan)
    return plan_service.serialize_plan(plan)


@router.get("/plans/{plan_id}")
def get_plan(plan_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    plan = plan_service.get_plan(db, user, plan_id)
    return plan_service.serialize_plan(plan, include_sessions=True)


@router.patch("/plans/{plan_id}")
def update_plan(
    plan_id: int,
    req: PlanUpdateRequest,
    user: User = Depends(require_roles("TRAINER", "ADMIN")),
    db: Session = Depends(get_db),
):
    plan = plan_service.update_plan(db, user, plan_id, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(plan)
    return plan_service.serialize_plan(plan)


@router.delete("/plans/{plan_id}")
def delete_plan(plan_id: int, user: User = Depends(require_roles("TRAINER", "ADMIN")), db: Session = Depends(get_db)):
    plan_service.delete_plan(db, user, plan_id)
    db.commit()
    return {"status": "deleted"}


# --- Sessions ---

@router.get("/plans/{plan_id}/sessions")
def list_sessions(plan_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [plan_service.serialize_session(s) for s in plan_service.list_sessions(db, user, plan_id)]


@router.post("/plans/{plan_id}/sessions", status_code=status.HTTP_201_CREATED)
def create_session(
    plan_id: int,
    req: SessionCreateRequest,
    user: User = Depends(require_roles("TRAINER", "ADMIN")),
    db: Session = Depends(get_db),
):
    s = plan_service.create_session(db, user, plan_id, req.model_dump())
    db.commit()
    db.refresh(s)
    return plan_service.serialize_session(s)


@router.get("/sessions/{session_id}")
def get_session(session_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return plan_service.serialize_session(plan_service.get_session(db, user, session_id))


@router.patch("/sessions/{session_id}")
def update_session(
    session_id: int,
    req: SessionUpdateRequest,
    user: User = Depends(require_roles("TRAINER", "ADMIN")),
    db: Session = Depends(get_db),
):
    s = plan_service.update_session(db, user, session_id, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(s)
    return plan_service.serialize_session(s)


@router.delete("/sessions/{session_id}")
def delete_session(
    session_id: int,
    user: User = Depends(require_roles("TRAINER", "ADMIN")),
    db: Session = Depends(get_db),
):
    plan_service.delete_session(db, user, session_id)
    db.commit()
    return {"status": "deleted"}


# --- Completion log ---

@router.get("/completion")
def list_completions(
    client_id: Optional[int] = Query(default=None, alias="clientId"),
    trainer_id: Optional[int] = Query(default=None, alias="trainerId"),
    plan_id: Optional[int] = Query(default=None, alias="planId"),
    session_id: Optional[int] = Query(default=None, alias="sessionId"),
    completion_status: Optional[str] = Query(default=None, alias="status"),
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
    page: int = Query(default=1),
    limit: int = Query(default=30),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page, limit = clamp_page(page, limit, default=30, maximum=200)
    query = plan_service.list_completions(
        db,
        user,
        client_id=client_id,
        trainer_id=trainer_id,
        plan_id=plan_id,
        session_id=session_id,
        status=completion_status,
        date_from=date_from,
        date_to=date_to,
    )
    return paginate(query, page, limit, plan_service.serialize_completion)


@router.post("/completion")
def upsert_completion(
    req: CompletionRequest,
    user: User = Depends(require_roles("CLIENT")),
    db: Session = Depends(get_db),
):
    log, created = plan_service.upsert_completion(db, user, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(log)
    return {"created": created, **plan_service.serialize_completion(log)}


@router.delete("/completion/{completion_id}")
def delete_completion(completion_id: int, admin_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    plan_service.delete_completion(db, completion_id)
    db.commit()
    return {"status": "deleted"}
