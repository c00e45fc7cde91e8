"""Persistence backends for pipeline records."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Any, Generic, Protocol, TypeVar
from uuid import UUID

from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from app.config import settings
from app.models.audit import CompanyLogRecord
from app.models.columns import utcnow
from app.models.company import CompanyRecord
from app.models.discovery import DiscoveryCandidateRecord
from app.models.meeting_note import MeetingNoteRecord
from app.models.thesis import InvestmentThesisRecord
from app.observability.metrics import metrics
from app.services.screening.errors import PersistenceError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


class RecordStore(Protocol[ModelT]):
    """Persistence contract shared by every pipeline table."""

    def add(self, record: ModelT) -> ModelT:
        ...

    def get(self, record_id: UUID) -> ModelT | None:
        ...

    def list(
        self,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[ModelT]:
        ...

    def update(self, record_id: UUID, values: Mapping[str, Any]) -> ModelT | None:
        ...

    def delete(self, record_id: UUID) -> bool:
        ...


def _table_name(model: type[SQLModel]) -> str:
    return str(getattr(model, "__tablename__", model.__name__))


def _stamp_update(model: type[SQLModel], values: Mapping[str, Any]) -> dict[str, Any]:
    stamped = dict(values)
    if "updated_at" in model.model_fields:
        stamped.setdefault("updated_at", utcnow())
    return stamped


class InMemoryRecordStore(Generic[ModelT]):
    """Thread-safe store used for local development and tests."""

    def __init__(self, model: type[ModelT]) -> None:
        self._model = model
        self._table = _table_name(model)
        self._records: dict[UUID, ModelT] = {}
        self._lock = Lock()

    def add(self, record: ModelT) -> ModelT:
        record_id = record.id  # type: ignore[attr-defined]
        with self._lock:
            if record_id in self._records:
                raise PersistenceError(
                    f"{self._table} record {record_id} already exists.",
                    code="409_DUPLICATE_RECORD",
                )
            self._records[record_id] = record
        metrics.increment("persistence.inserted", tags={"table": self._table, "repository": "memory"})
        return record

    def get(self, record_id: UUID) -> ModelT | None:
        with self._lock:
            return self._records.get(record_id)

    def list(
        self,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[ModelT]:
        with self._lock:
            records = list(self._records.values())
        if filters:
            records = [
                record
                for record in records
                if all(getattr(record, key) == value for key, value in filters.items())
            ]
        if order_by:
            present = [record for record in records if getattr(record, order_by) is not None]
            missing = [record for record in records if getattr(record, order_by) is None]
            present.sort(key=lambda record: getattr(record, order_by), reverse=descending)
            records = present + missing
        if limit is not None:
            return records[: max(0, limit)]
        return records

    def update(self, record_id: UUID, values: Mapping[str, Any]) -> ModelT | None:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            for key, value in _stamp_update(self._model, values).items():
                setattr(record, key, value)
        return record

    def delete(self, record_id: UUID) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None


class SqlRecordStore(Generic[ModelT]):
    """SQLModel-backed store over a shared engine (Postgres/Supabase or SQLite)."""

    def __init__(self, engine: Engine, model: type[ModelT], *, backend: str = "postgres") -> None:
        self._engine = engine
        self._model = model
        self._table = _table_name(model)
        self._metrics_tags = {"table": self._table, "repository": backend}

    def add(self, record: ModelT) -> ModelT:
        try:
            with self._session() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
        except SQLAlchemyError as exc:
            self._log_failure("add", exc)
            raise PersistenceError(f"Failed to insert {self._table} record.") from exc
        metrics.increment("persistence.inserted", tags=self._metrics_tags)
        return record

    def get(self, record_id: UUID) -> ModelT | None:
        try:
            with self._session() as session:
                return session.get(self._model, record_id)
        except SQLAlchemyError as exc:  # pragma: no cover - defensive guard
            self._log_failure("get", exc)
            raise PersistenceError(f"Failed to load {self._table} record.") from exc

    def list(
        self,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[ModelT]:
        statement = select(self._model)
        for key, value in (filters or {}).items():
            column = getattr(self._model, key)
            statement = statement.where(column.is_(None) if value is None else column == value)
        if order_by:
            column = getattr(self._model, order_by)
            statement = statement.order_by(
                column.desc().nulls_last() if descending else column.asc().nulls_last()
            )
        if limit is not None and limit >= 0:
            statement = statement.limit(limit)
        try:
            with self._session() as session:
                return list(session.exec(statement).all())
        except SQLAlchemyError as exc:  # pragma: no cover - defensive guard
            self._log_failure("list", exc)
            raise PersistenceError(f"Failed to list {self._table} records.") from exc

    def update(self, record_id: UUID, values: Mapping[str, Any]) -> ModelT | None:
        try:
            with self._session() as session:
                record = session.get(self._model, record_id)
                if record is None:
                    return None
                for key, value in _stamp_update(self._model, values).items():
                    setattr(record, key, value)
                session.add(record)
                session.commit()
                session.refresh(record)
                return record
        except SQLAlchemyError as exc:
            self._log_failure("update", exc)
            raise PersistenceError(f"Failed to update {self._table} record.") from exc

    def delete(self, record_id: UUID) -> bool:
        try:
            with self._session() as session:
                record = session.get(self._model, record_id)
                if record is None:
                    return False
                session.delete(record)
                session.commit()
                return True
        except SQLAlchemyError as exc:
            self._log_failure("delete", exc)
            raise PersistenceError(f"Failed to delete {self._table} record.") from exc

    def _log_failure(self, operation: str, exc: Exception) -> None:
        metrics.increment("persistence.failed", tags=self._metrics_tags)
        logger.exception(
            "persistence.error",
            extra={
                "table": self._table,
                "operation": operation,
                "backend": self._metrics_tags["repository"],
                "error": exc.__class__.__name__,
            },
        )

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine, expire_on_commit=False) as session:
            yield session


class CompanyLogStore:
    """Append-only view over the ``company_logs`` table."""

    def __init__(self, records: RecordStore[CompanyLogRecord]) -> None:
        self._records = records

    def append(
        self,
        company_id: UUID,
        action: str,
        *,
        details: Mapping[str, Any] | None = None,
        user_id: str | None = None,
    ) -> CompanyLogRecord:
        entry = CompanyLogRecord(
            company_id=company_id,
            action=action,
            details=dict(details) if details else None,
            user_id=user_id,
        )
        persisted = self._records.add(entry)
        logger.info(
            "audit.appended",
            extra={"company_id": str(company_id), "action": action, "user_id": user_id},
        )
        return persisted

    def list_for_company(self, company_id: UUID) -> list[CompanyLogRecord]:
        return self._records.list(
            filters={"company_id": company_id}, order_by="created_at", descending=True
        )


@dataclass
class PipelineRepositories:
    """One store per table, sharing a single engine when database-backed."""

    companies: RecordStore[CompanyRecord]
    candidates: RecordStore[DiscoveryCandidateRecord]
    theses: RecordStore[InvestmentThesisRecord]
    logs: CompanyLogStore
    notes: RecordStore[MeetingNoteRecord]
    engine: Engine | None = None

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()


def build_memory_repositories() -> PipelineRepositories:
    return PipelineRepositories(
        companies=InMemoryRecordStore(CompanyRecord),
        candidates=InMemoryRecordStore(DiscoveryCandidateRecord),
        theses=InMemoryRecordStore(InvestmentThesisRecord),
        logs=CompanyLogStore(InMemoryRecordStore(CompanyLogRecord)),
        notes=InMemoryRecordStore(MeetingNoteRecord),
    )


def build_sql_repositories(
    database_url: str,
    *,
    pool_min_size: int | None = None,
    pool_max_size: int | None = None,
    auto_create_schema: bool = False,
) -> PipelineRepositories:
    if not database_url:
        raise ValueError("DATABASE_URL is required for SQL-backed repositories.")

    parsed_url = make_url(database_url)
    sync_url, connect_args, drivername = _coerce_sync_database_url(parsed_url)
    pool_min = max(pool_min_size or settings.db_pool_min_size, 1)
    pool_max = max(pool_max_size or settings.db_pool_max_size, pool_min)
    is_sqlite = drivername.startswith("sqlite")
    engine_kwargs: dict[str, Any] = {
        "echo": False,
        "connect_args": connect_args,
        "pool_pre_ping": not is_sqlite,
    }
    if not is_sqlite:
        engine_kwargs["pool_size"] = pool_min
        engine_kwargs["max_overflow"] = max(pool_max - pool_min, 0)

    engine = create_engine(sync_url, **engine_kwargs)
    if auto_create_schema:
        SQLModel.metadata.create_all(engine)
    backend = _resolve_metrics_tag(parsed_url, drivername)
    return PipelineRepositories(
        companies=SqlRecordStore(engine, CompanyRecord, backend=backend),
        candidates=SqlRecordStore(engine, DiscoveryCandidateRecord, backend=backend),
        theses=SqlRecordStore(engine, InvestmentThesisRecord, backend=backend),
        logs=CompanyLogStore(SqlRecordStore(engine, CompanyLogRecord, backend=backend)),
        notes=SqlRecordStore(engine, MeetingNoteRecord, backend=backend),
        engine=engine,
    )


def _coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Convert async connection strings into sync SQLAlchemy URLs."""
    drivername = url.drivername
    connect_args: dict[str, Any] = {}
    if drivername.endswith("+asyncpg"):
        drivername = drivername.replace("+asyncpg", "+psycopg2")
    elif drivername.endswith("+aiosqlite"):
        drivername = "sqlite"
    sync_url = url.set(drivername=drivername)
    query = dict(sync_url.query) if sync_url.query else {}
    removed_ssl = query.pop("ssl", None) is not None
    sync_url = sync_url.set(query=query or None)

    host = (url.host or "").lower()
    if drivername.startswith("postgresql"):
        if "sslmode" not in query and (removed_ssl or "supabase.co" in host):
            connect_args["sslmode"] = "require"
    if drivername.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return sync_url.render_as_string(hide_password=False), connect_args, drivername


def _resolve_metrics_tag(url: URL, drivername: str) -> str:
    host = (url.host or "").lower()
    if "supabase.co" in host:
        return "supabase"
    if drivername.startswith("sqlite"):
        return "sqlite"
    return "postgres"


def build_repositories(database_url: str | None = None) -> PipelineRepositories:
    """Database-backed stores when DATABASE_URL is set, in-memory otherwise."""
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("pipeline.repository.initialized", extra={"backend": "memory"})
        return build_memory_repositories()
    try:
        repositories = build_sql_repositories(
            resolved_url,
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
            auto_create_schema=settings.db_auto_create_schema,
        )
        logger.info("pipeline.repository.initialized", extra={"backend": "database"})
        return repositories
    except Exception:
        logger.exception("pipeline.repository.init_failed", extra={"backend": "database"})
        raise


_REPOSITORIES: PipelineRepositories | None = None


def get_repositories() -> PipelineRepositories:
    """Return the process-wide repositories."""
    global _REPOSITORIES  # noqa: PLW0603
    if _REPOSITORIES is None:
        _REPOSITORIES = build_repositories()
    return _REPOSITORIES
