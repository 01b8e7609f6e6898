"""Shared fixtures: record factories and in-memory stores"""
from datetime import date

import pytest

from libs.items import ItemKind, ItemRecord, InMemoryRecordStore


def _record(kind, record_id, item_name="Blue Backpack", category="Accessories",
            description="Navy blue backpack with a laptop sleeve and keychain",
            when="2024-01-10", location="Library", status="Pending"):
    return ItemRecord(
        record_id=record_id,
        kind=kind,
        item_name=item_name,
        category=category,
        description=description,
        date=date.fromisoformat(when) if isinstance(when, str) else when,
        location=location,
        status=status,
        posted_by="user-1",
        contact_email="owner@example.com",
    )


@pytest.fixture
def make_lost():
    """Factory for lost records"""
    def _make(record_id="lost-1", **kwargs):
        return _record(ItemKind.LOST, record_id, **kwargs)
    return _make


@pytest.fixture
def make_found():
    """Factory for found records"""
    def _make(record_id="found-1", **kwargs):
        kwargs.setdefault("when", "2024-01-11")
        return _record(ItemKind.FOUND, record_id, **kwargs)
    return _make


@pytest.fixture
def lost_store():
    return InMemoryRecordStore(ItemKind.LOST)


@pytest.fixture
def found_store():
    return InMemoryRecordStore(ItemKind.FOUND)
