# database.py – SQLAlchemy setup + verified account links

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import List, Optional

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


class VerifiedConnection(Base):
    """Steam / speedrun.com account verified as belonging to a Discord user."""
    __tablename__ = "verified_connections"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    connection_type = Column(String, nullable=False)   # "steam" | "srcom"
    external_id = Column(String, nullable=False)
    removed = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime, default=lambda: dt.datetime.now(dt.timezone.utc))


class ManualRoleAssignment(Base):
    """Role granted by a moderator; the sync loop never takes it away."""
    __tablename__ = "manual_role_assignments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    role_id = Column(BigInteger, nullable=False)
    assigned_on = Column(DateTime, nullable=False, default=lambda: dt.datetime.now(dt.timezone.utc))
    note = Column(String, nullable=True)


def create_session_factory(db_url: str) -> sessionmaker:
    """Engine + session factory; creates the tables if they do not exist yet."""
    # With SQLite, make sure the parent folder of the .db file exists
    if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
        Path(db_url.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(db_url, future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def find_verified_connections(session: Session, user_id: Optional[int] = None) -> List[VerifiedConnection]:
    """Active (not removed) connections, optionally for a single Discord user."""
    stmt = select(VerifiedConnection).where(VerifiedConnection.removed.is_(False))
    if user_id is not None:
        stmt = stmt.where(VerifiedConnection.user_id == user_id)
    return list(session.scalars(stmt.order_by(VerifiedConnection.id)).all())


def find_manual_assignments(session: Session) -> List[ManualRoleAssignment]:
    return list(session.scalars(select(ManualRoleAssignment)).all())
