"""
Persistence layer for fleet-rbac.

When postgresql.enabled=true the controller has DB_HOST/DB_PASSWORD injected
as env vars. Otherwise falls back to a SQLite file at /tmp/fleet-rbac.db.
DATABASE_URL overrides both.

Usage:
    from db import init_db, upsert_binding, log_audit

All public functions are no-ops when the DB engine cannot be initialised,
and never raise: the audit trail must not break a reconcile.
"""

import os
import logging
from datetime import datetime, timezone, timedelta
from contextlib import contextmanager

from sqlalchemy import (
    create_engine, Column, Integer, String, DateTime, Text, JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

logger = logging.getLogger("fleet-rbac.db")

# ---------------------------------------------------------------------------
# Engine setup
# ---------------------------------------------------------------------------

def _build_url() -> str:
    url = os.environ.get("DATABASE_URL", "")
    if url:
        return url
    host = os.environ.get("DB_HOST", "")
    if host:
        from urllib.parse import quote_plus
        port = os.environ.get("DB_PORT", "5432")
        name = os.environ.get("DB_NAME", "fleet_rbac")
        user = quote_plus(os.environ.get("DB_USER", "fleet_rbac"))
        pw   = quote_plus(os.environ.get("DB_PASSWORD", ""))
        return f"postgresql://{user}:{pw}@{host}:{port}/{name}"
    return "sqlite:////tmp/fleet-rbac.db"


_engine = None
_SessionLocal = None
db_enabled: bool = False


def init_db(url: str | None = None) -> None:
    """Call once at operator startup."""
    global _engine, _SessionLocal, db_enabled
    url = url or _build_url()
    is_pg = url.startswith("postgresql")
    try:
        kwargs: dict = {"pool_pre_ping": True}
        if is_pg:
            kwargs["pool_size"] = 5
            kwargs["max_overflow"] = 10
            kwargs["connect_args"] = {"connect_timeout": 5}
        else:
            # kopf runs sync handlers in a thread pool
            kwargs["connect_args"] = {"check_same_thread": False}
        _engine = create_engine(url, **kwargs)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, autocommit=False)
        Base.metadata.create_all(_engine)
        db_enabled = True
        backend = "PostgreSQL" if is_pg else "SQLite"
        logger.info(f"DB initialised ({backend})")
    except Exception as e:
        logger.error(f"💥 DB init failed, persistence disabled: {e}")
        db_enabled = False


@contextmanager
def get_session() -> Session:
    if not db_enabled or _SessionLocal is None:
        yield None  # callers must check for None
        return
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


class BindingRecord(Base):
    __tablename__ = "team_role_bindings"
    __table_args__ = (UniqueConstraint("namespace", "name", name="uq_binding_namespace_name"),)

    id          = Column(Integer, primary_key=True, autoincrement=True)
    namespace   = Column(String(255), nullable=False, index=True)
    name        = Column(String(255), nullable=False, index=True)
    team_role   = Column(String(255), index=True)
    team        = Column(String(255), index=True)
    scope       = Column(String(20))
    clusters    = Column(JSON)
    phase       = Column(String(50), nullable=False, index=True)
    message     = Column(Text)
    created_at  = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at  = Column(DateTime(timezone=True), nullable=False)
    deleted_at  = Column(DateTime(timezone=True))


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id        = Column(Integer, primary_key=True, autoincrement=True)
    binding   = Column(String(511), nullable=False, index=True)
    event     = Column(String(100), nullable=False, index=True)
    severity  = Column(String(20))
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    detail    = Column(Text)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc)


def upsert_binding(namespace: str, name: str, **fields) -> None:
    """Insert or update the BindingRecord row for namespace/name.

    created_at is set on insert only; updated_at is refreshed on every call.
    """
    if not db_enabled:
        return
    try:
        with get_session() as session:
            if session is None:
                return
            now = _now()
            rec = session.query(BindingRecord).filter_by(namespace=namespace, name=name).first()
            if rec is None:
                rec = BindingRecord(namespace=namespace, name=name, created_at=now, updated_at=now, **fields)
                session.add(rec)
            else:
                for k, v in fields.items():
                    setattr(rec, k, v)
                rec.updated_at = now
    except Exception as e:
        logger.error(f"upsert_binding({namespace}/{name}) failed: {e}")


def log_audit(binding: str, event: str, severity: str = "", detail: str = "") -> None:
    """Append a row to audit_logs."""
    if not db_enabled:
        return
    try:
        with get_session() as session:
            if session is None:
                return
            session.add(AuditLog(
                binding=binding,
                event=event,
                severity=severity,
                timestamp=_now(),
                detail=detail,
            ))
    except Exception as e:
        logger.error(f"log_audit({binding}, {event}) failed: {e}")


def purge_old_records(days: int = 30) -> int:
    """Delete audit_logs and records of deleted bindings older than N days. Returns total rows deleted."""
    if not db_enabled:
        return 0
    cutoff = _now() - timedelta(days=days)
    deleted = 0
    try:
        with get_session() as session:
            if session is None:
                return 0
            deleted += session.query(AuditLog).filter(AuditLog.timestamp < cutoff).delete()
            deleted += (
                session.query(BindingRecord)
                .filter(BindingRecord.deleted_at.isnot(None), BindingRecord.deleted_at < cutoff)
                .delete()
            )
        logger.info(f"🧹 Purged {deleted} old DB records older than {days} days")
    except Exception as e:
        logger.error(f"purge_old_records() failed: {e}")
    return deleted
