from contextlib import contextmanager

from fastapi import HTTPException
from sqlalchemy.orm import Session


class StateChangedError(HTTPException):
    """An error answer whose flushed changes (e.g. an EXPIRED stamp) must still be committed."""


@contextmanager
def committing(db: Session):
    """Commit on success, and also when the workflow raised a StateChangedError."""
    try:
        yield
    except StateChangedError:
        db.commit()
        raise
    db.commit()
