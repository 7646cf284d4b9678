from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from cloudserve.config import config

_connect_args = {"check_same_thread": False} if config.SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

engine = create_engine(config.SQLALCHEMY_DATABASE_URI, connect_args=_connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


@contextmanager
def transactional(db: Session):
    """
    Commits the work done inside the block, or rolls it back and re-raises.

    Every write of the provisioning flow is a single-row change wrapped in
    its own block, so a later side effect failing never undoes a state
    change that was already committed.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
