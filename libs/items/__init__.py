"""Lost and found item records and the record-store boundary.

Both report kinds share one record shape; the store interface is what the
matching engine reads candidates through.
"""

from .records import ItemKind, ItemRecord, MatchDirection
from .store import RecordStore, RecordFilter, InMemoryRecordStore, SqlAlchemyRecordStore

__all__ = [
    'ItemKind',
    'ItemRecord',
    'MatchDirection',
    'RecordStore',
    'RecordFilter',
    'InMemoryRecordStore',
    'SqlAlchemyRecordStore',
]
