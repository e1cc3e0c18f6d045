from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy.orm import Session

from shopchat.db.session import SessionLocal


@contextmanager
def session_scope(factory: Optional[Callable[[], Session]] = None) -> Iterator[Session]:
    db = (factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
