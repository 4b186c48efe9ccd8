"""
Persistent ledger of processed repositories, analyzed accounts and flags.

The ledger is what makes crawl runs resumable and non-duplicating: a repository
is processed again only when its last-modified time moved forward, and every
account is analyzed at most once across runs.
"""

import datetime
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Set

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint, create_engine, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ghwatchdog.core.constants import DEFAULT_DATABASE_URL
from ghwatchdog.core.errors import PersistenceError
from ghwatchdog.core.models import AccountRecord, RepositoryRecord
from ghwatchdog.utils.date_utils import make_naive_datetime, to_utc, utcnow

logger = logging.getLogger(__name__)

Base = declarative_base()


class ProcessedRepository(Base):
    __tablename__ = "processed_repositories"

    id = Column(Integer, primary_key=True)
    repo_id = Column(String, nullable=False, unique=True, index=True)
    owner = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    size = Column(Integer, nullable=False, default=0)
    stargazers_count = Column(Integer, nullable=False, default=0)
    malicious = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=False)


class ProcessedUser(Base):
    __tablename__ = "processed_users"

    id = Column(Integer, primary_key=True)
    username = Column(String, nullable=False, unique=True, index=True)
    created_at = Column(DateTime)
    total_stars = Column(Integer, nullable=False, default=0)
    low_content_count = Column(Integer, nullable=False, default=0)
    starred_low_content_count = Column(Integer, nullable=False, default=0)
    recent_events = Column(Integer, nullable=False, default=0)
    suspicious = Column(Boolean, nullable=False, default=False)
    analyzed_at = Column(DateTime, nullable=False)


class HeuristicFlag(Base):
    __tablename__ = "heuristic_flags"

    id = Column(Integer, primary_key=True)
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(String, nullable=False, index=True)
    rationale = Column(Text, nullable=False)
    flagged_at = Column(DateTime, nullable=False)


class NarrativeReport(Base):
    __tablename__ = "narrative_reports"
    __table_args__ = (UniqueConstraint("entity_type", "entity_id", "model", name="uq_narrative_entity_model"),)

    id = Column(Integer, primary_key=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    model = Column(String, nullable=False)
    context = Column(Text)
    report = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)


class CrawlCheckpoint(Base):
    __tablename__ = "crawl_checkpoints"

    id = Column(Integer, primary_key=True)
    query = Column(String, nullable=False, unique=True)
    resume_before = Column(DateTime, nullable=False)
    saved_at = Column(DateTime, nullable=False)


def _now() -> datetime.datetime:
    return make_naive_datetime(utcnow())


class Ledger:
    """
    SQLAlchemy-backed store for crawl results.

    Access is serialized by a lock so one instance can be shared by every
    worker thread of a run. Timestamps are stored as naive UTC and returned as
    aware UTC datetimes.
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, echo: bool = False):
        """
        Open (and if needed create) the ledger database.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log every SQL statement

        Raises:
            PersistenceError: If the database cannot be opened or initialized
        """
        self.database_url = database_url
        engine_kwargs: Dict = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees a fresh empty database
                engine_kwargs["poolclass"] = StaticPool

        try:
            self.engine = create_engine(database_url, **engine_kwargs)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to open ledger at {database_url}: {e}") from e

        self._Session = sessionmaker(bind=self.engine, autoflush=False)
        self._lock = threading.Lock()
        logger.debug(f"Ledger opened at {database_url}")

    @contextmanager
    def _session(self) -> Iterator:
        with self._lock:
            session = self._Session()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceError(f"Ledger operation failed: {e}") from e
            finally:
                session.close()

    def close(self) -> None:
        self.engine.dispose()

    # Repositories

    def was_processed(self, repo_id: str, updated_at: datetime.datetime) -> bool:
        """
        Check whether a repository was processed at or after ``updated_at``.

        Args:
            repo_id: ``owner/name`` identity
            updated_at: Last-modified time of the repository as seen now

        Returns:
            bool: True if a stored record's last-modified >= ``updated_at``
        """
        with self._session() as session:
            row = session.query(ProcessedRepository).filter_by(repo_id=repo_id).one_or_none()
            if row is None:
                return False
            return row.updated_at >= make_naive_datetime(updated_at)

    def record_repository(self, record: RepositoryRecord) -> bool:
        """
        Insert a repository record unless one already exists.

        A record carrying a strictly newer last-modified time refreshes the
        stored row in place; the table keeps one row per identity.

        Returns:
            bool: True if a row was inserted or refreshed
        """
        updated_at = make_naive_datetime(record.updated_at)
        processed_at = make_naive_datetime(record.processed_at) if record.processed_at else _now()

        with self._session() as session:
            row = session.query(ProcessedRepository).filter_by(repo_id=record.repo_id).one_or_none()
            if row is not None:
                if updated_at <= row.updated_at:
                    return False
                row.updated_at = updated_at
                row.size = record.size
                row.stargazers_count = record.stargazers_count
                row.malicious = record.malicious
                row.processed_at = processed_at
                logger.debug(f"Refreshed ledger entry for {record.repo_id}")
                return True

            session.add(
                ProcessedRepository(
                    repo_id=record.repo_id,
                    owner=record.owner,
                    name=record.name,
                    updated_at=updated_at,
                    size=record.size,
                    stargazers_count=record.stargazers_count,
                    malicious=record.malicious,
                    processed_at=processed_at,
                )
            )
            try:
                session.flush()
            except IntegrityError:
                # Another writer inserted the same identity first
                session.rollback()
                return False
            return True

    def get_repository(self, repo_id: str) -> Optional[RepositoryRecord]:
        with self._session() as session:
            row = session.query(ProcessedRepository).filter_by(repo_id=repo_id).one_or_none()
            if row is None:
                return None
            return RepositoryRecord(
                owner=row.owner,
                name=row.name,
                updated_at=to_utc(row.updated_at),
                size=row.size,
                stargazers_count=row.stargazers_count,
                malicious=row.malicious,
                processed_at=to_utc(row.processed_at),
            )

    def count_repositories(self, malicious: Optional[bool] = None) -> int:
        with self._session() as session:
            query = session.query(func.count(ProcessedRepository.id))
            if malicious is not None:
                query = query.filter(ProcessedRepository.malicious == malicious)
            return query.scalar() or 0

    # Accounts

    def record_account(self, record: AccountRecord) -> bool:
        """
        Insert an account record unless one already exists. First analysis wins.

        Returns:
            bool: True if a row was inserted
        """
        with self._session() as session:
            exists = session.query(ProcessedUser.id).filter_by(username=record.login).first()
            if exists is not None:
                return False
            session.add(
                ProcessedUser(
                    username=record.login,
                    created_at=make_naive_datetime(record.created_at),
                    total_stars=record.total_stars,
                    low_content_count=record.low_content_count,
                    starred_low_content_count=record.starred_low_content_count,
                    recent_events=record.recent_events,
                    suspicious=record.suspicious,
                    analyzed_at=_now(),
                )
            )
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                return False
            return True

    def get_account(self, login: str) -> Optional[AccountRecord]:
        """Load a stored account. The rationale lives in the flags table and is not included."""
        with self._session() as session:
            row = session.query(ProcessedUser).filter_by(username=login).one_or_none()
            if row is None:
                return None
            return AccountRecord(
                login=row.username,
                created_at=to_utc(row.created_at),
                total_stars=row.total_stars,
                low_content_count=row.low_content_count,
                starred_low_content_count=row.starred_low_content_count,
                recent_events=row.recent_events,
                suspicious=row.suspicious,
            )

    def load_processed_account_ids(self) -> Set[str]:
        """Bulk-load every analyzed login, used to pre-seed a run's skip-set."""
        with self._session() as session:
            return {username for (username,) in session.query(ProcessedUser.username)}

    # Flags

    def record_flag(self, entity_type: str, entity_id: str, rationale: str) -> None:
        """Append a flag. Flags are never updated or deduplicated."""
        with self._session() as session:
            session.add(
                HeuristicFlag(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    rationale=rationale,
                    flagged_at=_now(),
                )
            )

    def list_flags(self, entity_type: Optional[str] = None, entity_id: Optional[str] = None) -> List[Dict]:
        with self._session() as session:
            query = session.query(HeuristicFlag)
            if entity_type is not None:
                query = query.filter_by(entity_type=entity_type)
            if entity_id is not None:
                query = query.filter_by(entity_id=entity_id)
            return [
                {
                    "entity_type": row.entity_type,
                    "entity_id": row.entity_id,
                    "rationale": row.rationale,
                    "flagged_at": to_utc(row.flagged_at),
                }
                for row in query.order_by(HeuristicFlag.id)
            ]

    def count_flags(self, entity_type: Optional[str] = None) -> int:
        with self._session() as session:
            query = session.query(func.count(HeuristicFlag.id))
            if entity_type is not None:
                query = query.filter(HeuristicFlag.entity_type == entity_type)
            return query.scalar() or 0

    # Narrative reports

    def save_narrative(self, entity_type: str, entity_id: str, model: str, context: str, text: str) -> None:
        """Store a generated narrative report, replacing any earlier one for the same model."""
        with self._session() as session:
            row = (
                session.query(NarrativeReport)
                .filter_by(entity_type=entity_type, entity_id=entity_id, model=model)
                .one_or_none()
            )
            if row is None:
                session.add(
                    NarrativeReport(
                        entity_type=entity_type,
                        entity_id=entity_id,
                        model=model,
                        context=context,
                        report=text,
                        created_at=_now(),
                    )
                )
            else:
                row.context = context
                row.report = text
                row.created_at = _now()

    def get_narrative(self, entity_type: str, entity_id: str, model: str) -> Optional[str]:
        with self._session() as session:
            row = (
                session.query(NarrativeReport)
                .filter_by(entity_type=entity_type, entity_id=entity_id, model=model)
                .one_or_none()
            )
            return row.report if row is not None else None

    # Checkpoints

    def save_checkpoint(self, query: str, resume_before: datetime.datetime) -> None:
        """Remember where an interrupted crawl of ``query`` should pick up."""
        with self._session() as session:
            row = session.query(CrawlCheckpoint).filter_by(query=query).one_or_none()
            if row is None:
                session.add(
                    CrawlCheckpoint(
                        query=query,
                        resume_before=make_naive_datetime(resume_before),
                        saved_at=_now(),
                    )
                )
            else:
                row.resume_before = make_naive_datetime(resume_before)
                row.saved_at = _now()
        logger.debug(f"Saved checkpoint for {query!r}: {resume_before.isoformat()}")

    def load_checkpoint(self, query: str) -> Optional[datetime.datetime]:
        with self._session() as session:
            row = session.query(CrawlCheckpoint).filter_by(query=query).one_or_none()
            return to_utc(row.resume_before) if row is not None else None

    def clear_checkpoint(self, query: str) -> None:
        with self._session() as session:
            session.query(CrawlCheckpoint).filter_by(query=query).delete()
