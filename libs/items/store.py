"""Record-store boundary for lost and found reports.

The matching engine only ever calls ``find``. The remaining operations exist
for seeding and the CLI; neither store adapter is a persistence engine of its
own, they wrap a SQLAlchemy session or a plain dict.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from libs.db.models import LostItem, FoundItem, generate_uuid
from libs.items.records import ItemKind, ItemRecord
from libs.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordFilter:
    """Query over one collection.

    Set fields are combined with AND. When ``any_of`` is non-empty, a record
    must additionally satisfy at least one of the alternatives.
    """
    category: Optional[str] = None
    status: Optional[str] = None
    exclude_status: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = None
    any_of: Tuple["RecordFilter", ...] = ()

    @classmethod
    def either(cls, *alternatives: "RecordFilter") -> "RecordFilter":
        return cls(any_of=tuple(alternatives))

    @property
    def search_terms(self) -> List[str]:
        return [t.lower() for t in (self.search or "").split() if t.strip()]

    def matches(self, record: ItemRecord) -> bool:
        """Evaluate the filter against a record in memory"""
        if self.category is not None and (record.category or "").strip().lower() != self.category.strip().lower():
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.exclude_status is not None and record.status == self.exclude_status:
            return False
        if self.date_from is not None and (record.date is None or record.date < self.date_from):
            return False
        if self.date_to is not None and (record.date is None or record.date > self.date_to):
            return False
        terms = self.search_terms
        if terms:
            haystack = " ".join([record.item_name, record.description, record.location]).lower()
            # any term, like a text index query
            if not any(term in haystack for term in terms):
                return False
        if self.any_of and not any(alt.matches(record) for alt in self.any_of):
            return False
        return True


class RecordStore(ABC):
    """Collection of reports of a single kind"""

    kind: ItemKind

    @abstractmethod
    def find(self, record_filter: Optional[RecordFilter] = None) -> Iterable[ItemRecord]:
        """Records matching the filter, newest first"""

    def count(self, record_filter: Optional[RecordFilter] = None) -> int:
        return sum(1 for _ in self.find(record_filter))

    @abstractmethod
    def save(self, record: ItemRecord) -> ItemRecord:
        """Insert or update a record, returning it with its identifier"""

    @abstractmethod
    def find_by_id(self, record_id: str) -> Optional[ItemRecord]:
        ...

    @abstractmethod
    def delete_by_id(self, record_id: str) -> bool:
        ...


class InMemoryRecordStore(RecordStore):
    """Dict-backed store used by tests and the seed preview"""

    def __init__(self, kind: ItemKind, records: Iterable[ItemRecord] = ()):
        self.kind = kind
        self._records: Dict[str, ItemRecord] = {}
        for record in records:
            self.save(record)

    def find(self, record_filter: Optional[RecordFilter] = None) -> Iterator[ItemRecord]:
        snapshot = list(self._records.values())
        for record in reversed(snapshot):
            if record_filter is None or record_filter.matches(record):
                yield record

    def save(self, record: ItemRecord) -> ItemRecord:
        if record.kind is not self.kind:
            raise ValueError(f"Cannot store a {record.kind.value} record in the {self.kind.value} store")
        if not record.record_id:
            record = record.with_id(generate_uuid())
        self._records[record.record_id] = record
        return record

    def find_by_id(self, record_id: str) -> Optional[ItemRecord]:
        return self._records.get(record_id)

    def delete_by_id(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None


class SqlAlchemyRecordStore(RecordStore):
    """Store over the ``lost_items`` or ``found_items`` table.

    Pass ``session`` to work inside a caller-managed unit of work, or
    ``session_factory`` to open a short-lived session per call. Only the
    latter is safe when several threads query the same store.
    """

    def __init__(self, session, kind: ItemKind, session_factory=None):
        if (session is None) == (session_factory is None):
            raise ValueError("Provide exactly one of session or session_factory")
        self.session = session
        self.session_factory = session_factory
        self.kind = kind
        self.model = LostItem if kind is ItemKind.LOST else FoundItem
        self.date_column = self.model.date_lost if kind is ItemKind.LOST else self.model.date_found

    @contextmanager
    def _scope(self) -> Iterator[Session]:
        if self.session is not None:
            yield self.session
            return
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _condition(self, record_filter: RecordFilter):
        model = self.model
        clauses = []
        if record_filter.category is not None:
            clauses.append(func.lower(func.trim(model.category)) == record_filter.category.strip().lower())
        if record_filter.status is not None:
            clauses.append(model.status == record_filter.status)
        if record_filter.exclude_status is not None:
            clauses.append(model.status != record_filter.exclude_status)
        if record_filter.date_from is not None:
            clauses.append(self.date_column >= record_filter.date_from)
        if record_filter.date_to is not None:
            clauses.append(self.date_column <= record_filter.date_to)
        terms = record_filter.search_terms
        if terms:
            term_clauses = []
            for term in terms:
                pattern = f"%{term}%"
                term_clauses.append(or_(
                    func.lower(model.item_name).like(pattern),
                    func.lower(model.description).like(pattern),
                    func.lower(model.location).like(pattern),
                ))
            clauses.append(or_(*term_clauses))
        if record_filter.any_of:
            clauses.append(or_(*[self._condition(alt) for alt in record_filter.any_of]))
        return and_(*clauses) if clauses else None

    def _query(self, session: Session, record_filter: Optional[RecordFilter]):
        query = session.query(self.model)
        if record_filter is not None:
            condition = self._condition(record_filter)
            if condition is not None:
                query = query.filter(condition)
        return query

    def find(self, record_filter: Optional[RecordFilter] = None) -> Iterator[ItemRecord]:
        if self.session is not None:
            query = self._query(self.session, record_filter).order_by(self.model.created_at.desc(), self.model.id)
            for row in query:
                yield ItemRecord.from_model(row)
            return
        with self._scope() as session:
            query = self._query(session, record_filter).order_by(self.model.created_at.desc(), self.model.id)
            records = [ItemRecord.from_model(row) for row in query]
        yield from records

    def count(self, record_filter: Optional[RecordFilter] = None) -> int:
        with self._scope() as session:
            return self._query(session, record_filter).count()

    def save(self, record: ItemRecord) -> ItemRecord:
        if record.kind is not self.kind:
            raise ValueError(f"Cannot store a {record.kind.value} record in the {self.kind.value} store")
        if not record.record_id:
            record = record.with_id(generate_uuid())
        with self._scope() as session:
            row = session.get(self.model, record.record_id)
            incoming = record.to_model()
            if row is None:
                session.add(incoming)
                row = incoming
            else:
                for column in self.model.__table__.columns.keys():
                    if column in ("id", "created_at", "updated_at"):
                        continue
                    setattr(row, column, getattr(incoming, column))
            session.flush()
            saved = ItemRecord.from_model(row)
        logger.debug("Saved item record", kind=self.kind.value, record_id=saved.record_id)
        return saved

    def find_by_id(self, record_id: str) -> Optional[ItemRecord]:
        with self._scope() as session:
            row = session.get(self.model, record_id)
            return ItemRecord.from_model(row) if row is not None else None

    def delete_by_id(self, record_id: str) -> bool:
        with self._scope() as session:
            row = session.get(self.model, record_id)
            if row is None:
                return False
            session.delete(row)
            session.flush()
            return True
