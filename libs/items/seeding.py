# libs/items/seeding.py

from __future__ import annotations
import csv
import json
from pathlib import Path
from typing import Any, List, Mapping
from dataclasses import dataclass, field, asdict

from libs.db.models import CATEGORY_VALUES, STATUS_VALUES, DESCRIPTION_MAX_LENGTH
from libs.items.records import ItemKind, ItemRecord
from libs.items.store import RecordStore
from libs.observability import get_logger, timer

logger = get_logger(__name__)

REQUIRED_FIELDS = ("item_name", "category", "description", "date", "location", "posted_by", "contact_email")


@dataclass
class SeedingStats:
    items_read: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_skipped: int = 0
    errors: List[str] = field(default_factory=list)


def check_record(record: ItemRecord) -> List[str]:
    """Problems that would stop ``record`` from being stored"""
    problems = []
    for name in REQUIRED_FIELDS:
        value = getattr(record, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            problems.append(f"missing {name}")
    if record.category and record.category not in CATEGORY_VALUES:
        problems.append(f"unknown category {record.category!r}")
    if record.status not in STATUS_VALUES:
        problems.append(f"unknown status {record.status!r}")
    if record.description and len(record.description) > DESCRIPTION_MAX_LENGTH:
        problems.append("description too long")
    return problems


class ItemSeedingService:
    """Loads lost or found reports from a JSON or CSV file into a store"""

    def __init__(self, store: RecordStore):
        self.store = store

    @property
    def kind(self) -> ItemKind:
        return self.store.kind

    def _parse_file(self, file_path: Path) -> List[Mapping[str, Any]]:
        if file_path.suffix.lower() == ".csv":
            with open(file_path, mode='r', encoding='utf-8', newline='') as infile:
                return list(csv.DictReader(infile))
        elif file_path.suffix.lower() == ".json":
            with open(file_path, mode='r', encoding='utf-8') as infile:
                data = json.load(infile)
            if isinstance(data, dict):
                data = data.get('items') or data.get('data') or []
            return list(data)
        else:
            raise ValueError(f"Unsupported file type: {file_path.suffix}")

    def seed_items(self, rows: List[Mapping[str, Any]], dry_run: bool = False) -> SeedingStats:
        stats = SeedingStats(items_read=len(rows))
        for index, row in enumerate(rows, 1):
            try:
                record = ItemRecord.from_dict(row, self.kind)
            except (TypeError, ValueError) as e:
                stats.items_skipped += 1
                stats.errors.append(f"row {index}: {e}")
                continue
            problems = check_record(record)
            if problems:
                stats.items_skipped += 1
                stats.errors.append(f"row {index}: {', '.join(problems)}")
                continue
            exists = bool(record.record_id) and self.store.find_by_id(record.record_id) is not None
            if not dry_run:
                self.store.save(record)
            if exists:
                stats.items_updated += 1
            else:
                stats.items_created += 1
        return stats

    def seed_items_from_file(self, file_path: Path, dry_run: bool = False) -> SeedingStats:
        try:
            logger.info("Starting item seeding", file_path=str(file_path), kind=self.kind.value)
            with timer("item_seeding.total"):
                rows = self._parse_file(file_path)
                stats = self.seed_items(rows, dry_run=dry_run)
            logger.info("Item seeding completed", stats=asdict(stats))
            return stats
        except Exception as e:
            logger.error("Item seeding failed", file_path=str(file_path), error=str(e))
            raise


def create_item_seeding_service(store: RecordStore) -> ItemSeedingService:
    return ItemSeedingService(store)
