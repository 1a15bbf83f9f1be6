from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from chatrelay.config import settings
from chatrelay.errors import TransientCollaboratorError

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(session_factory=None):
    """Short-lived session for store calls; database failures surface as TransientCollaboratorError."""
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransientCollaboratorError(str(exc)) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
