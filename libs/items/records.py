"""Shared record shape for lost and found reports"""
from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from libs.db.models import ItemStatus, LostItem, FoundItem


class ItemKind(Enum):
    LOST = "lost"
    FOUND = "found"

    @property
    def date_field(self) -> str:
        """Wire name of the kind's date field"""
        return "dateLost" if self is ItemKind.LOST else "dateFound"

    @property
    def opposite(self) -> "ItemKind":
        return ItemKind.FOUND if self is ItemKind.LOST else ItemKind.LOST


class MatchDirection(Enum):
    """Which collection is searched for which anchor"""
    LOST_FOR_FOUND = "lost_for_found"
    FOUND_FOR_LOST = "found_for_lost"

    @property
    def anchor_kind(self) -> ItemKind:
        return ItemKind.FOUND if self is MatchDirection.LOST_FOR_FOUND else ItemKind.LOST

    @property
    def candidate_kind(self) -> ItemKind:
        return self.anchor_kind.opposite

    @classmethod
    def for_anchor(cls, kind: ItemKind) -> "MatchDirection":
        return cls.LOST_FOR_FOUND if kind is ItemKind.FOUND else cls.FOUND_FOR_LOST


def parse_date(value: Any) -> Optional[date]:
    """Coerce a date, datetime or ISO-8601 string to a ``date``"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        # "2024-01-10" and "2024-01-10T00:00:00.000Z" both carry the day first
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Unsupported date value: {value!r}")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "" or isinstance(value, datetime):
        return value or None
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] not in (None, ""):
            return data[key]
    return default


@dataclass(frozen=True)
class ItemRecord:
    """A lost or found report as seen by the matching engine.

    Records are immutable; the engine never writes back to them.
    """
    record_id: str
    kind: ItemKind
    item_name: str
    category: str
    description: str
    date: Optional[date]
    location: str
    status: str = ItemStatus.PENDING.value
    posted_by: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: str = ""
    image: str = ""
    views: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, model) -> "ItemRecord":
        """Build a record from a ``LostItem`` or ``FoundItem`` row"""
        if isinstance(model, LostItem):
            kind = ItemKind.LOST
        elif isinstance(model, FoundItem):
            kind = ItemKind.FOUND
        else:
            raise TypeError(f"Not an item model: {type(model).__name__}")
        return cls(
            record_id=str(model.id),
            kind=kind,
            item_name=model.item_name or "",
            category=model.category or "",
            description=model.description or "",
            date=model.item_date,
            location=model.location or "",
            status=model.status or ItemStatus.PENDING.value,
            posted_by=model.posted_by,
            contact_email=model.contact_email,
            contact_phone=model.contact_phone or "",
            image=model.image or "",
            views=model.views or 0,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], kind: ItemKind) -> "ItemRecord":
        """Build a record from API-style (camelCase) or snake_case keys"""
        record_id = _pick(data, "_id", "id", "record_id")
        return cls(
            record_id=str(record_id) if record_id is not None else "",
            kind=kind,
            item_name=_pick(data, "itemName", "item_name", "name", default=""),
            category=_pick(data, "category", default=""),
            description=_pick(data, "description", default=""),
            date=parse_date(_pick(data, kind.date_field, "date_lost" if kind is ItemKind.LOST else "date_found", "date")),
            location=_pick(data, "location", default=""),
            status=_pick(data, "status", default=ItemStatus.PENDING.value),
            posted_by=_pick(data, "postedBy", "posted_by"),
            contact_email=_pick(data, "contactEmail", "contact_email"),
            contact_phone=_pick(data, "contactPhone", "contact_phone", default=""),
            image=_pick(data, "image", default=""),
            views=int(_pick(data, "views", default=0)),
            created_at=_parse_datetime(_pick(data, "createdAt", "created_at")),
            updated_at=_parse_datetime(_pick(data, "updatedAt", "updated_at")),
        )

    def to_model(self):
        """Build a new ORM row carrying this record's fields"""
        model_cls = LostItem if self.kind is ItemKind.LOST else FoundItem
        date_column = "date_lost" if self.kind is ItemKind.LOST else "date_found"
        values = dict(
            item_name=self.item_name,
            category=self.category,
            description=self.description,
            location=self.location,
            status=self.status,
            posted_by=self.posted_by,
            contact_email=self.contact_email,
            contact_phone=self.contact_phone,
            image=self.image,
            views=self.views,
        )
        values[date_column] = self.date
        if self.record_id:
            values["id"] = self.record_id
        return model_cls(**values)

    def with_id(self, record_id: str) -> "ItemRecord":
        return replace(self, record_id=record_id)

    def missing_fields(self) -> List[str]:
        """Names of the fields matching requires that are blank"""
        missing = []
        if not (self.category or "").strip():
            missing.append("category")
        if not (self.description or "").strip():
            missing.append("description")
        return missing

    def summary(self) -> Dict[str, Any]:
        """Short form embedded in a match payload"""
        return {
            "_id": self.record_id,
            "itemName": self.item_name,
            "category": self.category,
            self.kind.date_field: self.date.isoformat() if self.date else None,
            "location": self.location,
            "status": self.status,
        }

    def to_payload(self) -> Dict[str, Any]:
        """Full API representation of the report"""
        payload = {
            "_id": self.record_id,
            "itemName": self.item_name,
            "category": self.category,
            "description": self.description,
            self.kind.date_field: self.date.isoformat() if self.date else None,
            "location": self.location,
            "image": self.image,
            "status": self.status,
            "postedBy": self.posted_by,
            "contactEmail": self.contact_email,
            "contactPhone": self.contact_phone,
            "views": self.views,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        return payload
