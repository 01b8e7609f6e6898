"""
Database models for lost and found item reports
libs/db/models.py
"""
from datetime import datetime
from enum import Enum as PyEnum
import uuid

from sqlalchemy import (
    Column, String, Integer, Text, Date, DateTime,
    Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base, validates

Base = declarative_base()


class ItemCategory(PyEnum):
    """Closed set of item categories"""
    BOOKS = "Books"
    ID_CARD = "ID Card"
    ELECTRONICS = "Electronics"
    ACCESSORIES = "Accessories"
    OTHER = "Other"


class ItemStatus(PyEnum):
    """Lifecycle status of a report"""
    PENDING = "Pending"
    CLAIMED = "Claimed"
    RESOLVED = "Resolved"


CATEGORY_VALUES = tuple(c.value for c in ItemCategory)
STATUS_VALUES = tuple(s.value for s in ItemStatus)
DESCRIPTION_MAX_LENGTH = 1000


def generate_uuid():
    """Generate a new UUID"""
    return str(uuid.uuid4())


def _in_clause(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class ItemReportMixin:
    """Columns shared by lost and found reports.

    Only the date column differs between the two tables, which lets the
    matching engine treat both kinds through one record shape.
    """

    id = Column(String(36), primary_key=True, default=generate_uuid)
    item_name = Column(String(255), nullable=False)
    category = Column(String(32), nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String(255), nullable=False)
    image = Column(String(500), default='')
    status = Column(String(16), nullable=False, default=ItemStatus.PENDING.value)

    # Reporter
    posted_by = Column(String(64), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(64), default='')

    views = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @validates('item_name', 'location')
    def _strip(self, key, value):
        return value.strip() if isinstance(value, str) else value

    @validates('category')
    def validate_category(self, key, category):
        if category not in CATEGORY_VALUES:
            raise ValueError(f"Invalid category: {category}")
        return category

    @validates('status')
    def validate_status(self, key, status):
        if status not in STATUS_VALUES:
            raise ValueError(f"Invalid status: {status}")
        return status

    @validates('description')
    def validate_description(self, key, description):
        if description and len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValueError(f"Description exceeds {DESCRIPTION_MAX_LENGTH} characters")
        return description


class LostItem(Base, ItemReportMixin):
    """Report of a missing possession"""
    __tablename__ = 'lost_items'

    date_lost = Column(Date, nullable=False)

    __table_args__ = (
        CheckConstraint(_in_clause('category', CATEGORY_VALUES), name='ck_lost_items_category'),
        CheckConstraint(_in_clause('status', STATUS_VALUES), name='ck_lost_items_status'),
        CheckConstraint('views >= 0', name='ck_lost_items_views_positive'),
        Index('idx_lost_items_category', 'category'),
        Index('idx_lost_items_status_date', 'status', 'date_lost'),
    )

    @property
    def item_date(self):
        return self.date_lost


class FoundItem(Base, ItemReportMixin):
    """Report of a possession recovered by someone other than its owner"""
    __tablename__ = 'found_items'

    date_found = Column(Date, nullable=False)

    __table_args__ = (
        CheckConstraint(_in_clause('category', CATEGORY_VALUES), name='ck_found_items_category'),
        CheckConstraint(_in_clause('status', STATUS_VALUES), name='ck_found_items_status'),
        CheckConstraint('views >= 0', name='ck_found_items_views_positive'),
        Index('idx_found_items_category', 'category'),
        Index('idx_found_items_status_date', 'status', 'date_found'),
    )

    @property
    def item_date(self):
        return self.date_found
