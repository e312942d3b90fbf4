"""
Monetary Index Module

Reference rates (IPCA, IGP-M, ...) and their monthly percentage adjustments,
plus the calculator that compounds those adjustments over a date window.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
import uuid

from .currency import to_decimal
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import NotFound, ValidationError, InvalidIndexDateRange
from .logging_config import get_logger


logger = get_logger("antecipa.indexes")

DateLike = Union[date, datetime, str]


@dataclass
class Index(StorageRecord):
    """Named monetary reference rate"""
    name: str
    description: Optional[str] = None


@dataclass
class IndexMonthlyUpdate(StorageRecord):
    """Percentage adjustment of an index for one calendar month"""
    index_id: str
    reference_month: date          # Always the first day of the month
    monthly_adjustment: Decimal    # Percentage, e.g. 0.45 for 0.45%


@dataclass(frozen=True)
class CompoundAdjustment:
    """Result of compounding monthly adjustments over a window"""
    factor: Decimal
    percentage: Decimal
    months_applied: int
    series: List[Tuple[date, Decimal]] = field(default_factory=list)


def first_of_month(value: date) -> date:
    return date(value.year, value.month, 1)


def parse_reference_month(value: DateLike) -> date:
    """
    Parse a ``YYYY-MM`` (or full ISO date) reference month into its first day

    Raises:
        ValueError: for anything that is not a valid month
    """
    if isinstance(value, datetime):
        return first_of_month(value.date())
    if isinstance(value, date):
        return first_of_month(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Reference month is required")

    text = value.strip()
    if len(text) == 7:
        year, month = text.split("-")
        return date(int(year), int(month), 1)
    return first_of_month(date.fromisoformat(text[:10]))


class IndexManager:
    """
    CRUD for indexes and their monthly update series
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.indexes_table = "indexes"
        self.updates_table = "index_updates"

    def create_index(self, name: str, description: Optional[str] = None) -> Index:
        """Create a new index"""
        if not name or not name.strip():
            raise ValidationError("Index name is required")

        now = datetime.now(timezone.utc)
        index = Index(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name.strip(),
            description=description
        )
        self._save_index(index)

        self.audit_trail.log_event(
            event_type=AuditEventType.INDEX_CREATED,
            entity_type="index",
            entity_id=index.id,
            metadata={"name": index.name}
        )
        return index

    def update_index(
        self,
        index_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Index:
        """Rename or re-describe an index"""
        index = self.require_index(index_id)
        if name is not None:
            if not name.strip():
                raise ValidationError("Index name is required")
            index.name = name.strip()
        if description is not None:
            index.description = description
        index.updated_at = datetime.now(timezone.utc)
        self._save_index(index)

        self.audit_trail.log_event(
            event_type=AuditEventType.INDEX_UPDATED,
            entity_type="index",
            entity_id=index.id,
            metadata={"name": index.name, "description": index.description}
        )
        return index

    def delete_index(self, index_id: str) -> None:
        """Delete an index together with its monthly updates"""
        self.require_index(index_id)
        with self.storage.atomic():
            removed = self.storage.delete_where(self.updates_table, {"index_id": index_id})
            self.storage.delete(self.indexes_table, index_id)

        self.audit_trail.log_event(
            event_type=AuditEventType.INDEX_DELETED,
            entity_type="index",
            entity_id=index_id,
            metadata={"updates_removed": removed}
        )

    def get_index(self, index_id: str) -> Optional[Index]:
        """Get index by ID"""
        data = self.storage.load(self.indexes_table, index_id)
        if data:
            return self._index_from_dict(data)
        return None

    def require_index(self, index_id: str) -> Index:
        index = self.get_index(index_id)
        if index is None:
            raise NotFound("index", index_id)
        return index

    def list_indexes(self) -> List[Index]:
        """All indexes ordered by name"""
        indexes = [self._index_from_dict(row) for row in self.storage.load_all(self.indexes_table)]
        indexes.sort(key=lambda i: i.name.lower())
        return indexes

    def record_update(
        self,
        index_id: str,
        reference_month: DateLike,
        monthly_adjustment
    ) -> IndexMonthlyUpdate:
        """
        Record the adjustment of one month

        Raises:
            NotFound: unknown index
            ValidationError: bad month or adjustment, or the month already has a row
        """
        self.require_index(index_id)
        month = self._parse_month(reference_month)
        adjustment = self._parse_adjustment(monthly_adjustment)

        existing = self.storage.find(self.updates_table, {
            "index_id": index_id,
            "reference_month": month.isoformat()
        })
        if existing:
            raise ValidationError(
                f"Index {index_id} already has an update for {month.strftime('%Y-%m')}"
            )

        now = datetime.now(timezone.utc)
        update = IndexMonthlyUpdate(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            index_id=index_id,
            reference_month=month,
            monthly_adjustment=adjustment
        )
        self._save_update(update)

        self.audit_trail.log_event(
            event_type=AuditEventType.INDEX_MONTHLY_UPDATE_RECORDED,
            entity_type="index",
            entity_id=index_id,
            metadata={
                "update_id": update.id,
                "reference_month": month.isoformat(),
                "monthly_adjustment": adjustment
            }
        )
        return update

    def change_update(self, update_id: str, monthly_adjustment) -> IndexMonthlyUpdate:
        """Correct the adjustment of an existing month"""
        update = self.require_update(update_id)
        previous = update.monthly_adjustment
        update.monthly_adjustment = self._parse_adjustment(monthly_adjustment)
        update.updated_at = datetime.now(timezone.utc)
        self._save_update(update)

        self.audit_trail.log_event(
            event_type=AuditEventType.INDEX_MONTHLY_UPDATE_CHANGED,
            entity_type="index",
            entity_id=update.index_id,
            metadata={
                "update_id": update.id,
                "old_adjustment": previous,
                "new_adjustment": update.monthly_adjustment
            }
        )
        return update

    def delete_update(self, update_id: str) -> None:
        update = self.require_update(update_id)
        self.storage.delete(self.updates_table, update_id)

        self.audit_trail.log_event(
            event_type=AuditEventType.INDEX_MONTHLY_UPDATE_DELETED,
            entity_type="index",
            entity_id=update.index_id,
            metadata={
                "update_id": update.id,
                "reference_month": update.reference_month.isoformat()
            }
        )

    def require_update(self, update_id: str) -> IndexMonthlyUpdate:
        data = self.storage.load(self.updates_table, update_id)
        if not data:
            raise NotFound("index_update", update_id)
        return self._update_from_dict(data)

    def get_updates(self, index_id: str) -> List[IndexMonthlyUpdate]:
        """Monthly updates of an index ordered by reference month"""
        rows = self.storage.find(self.updates_table, {"index_id": index_id})
        updates = [self._update_from_dict(row) for row in rows]
        updates.sort(key=lambda u: u.reference_month)
        return updates

    def _parse_month(self, value: DateLike) -> date:
        try:
            return parse_reference_month(value)
        except ValueError:
            raise ValidationError(
                f"Invalid reference month '{value}'. Please use YYYY-MM format."
            )

    def _parse_adjustment(self, value) -> Decimal:
        try:
            adjustment = to_decimal(value)
        except ValueError:
            raise ValidationError(f"Invalid monthly adjustment: {value!r}")
        if adjustment <= Decimal('-100'):
            raise ValidationError("Monthly adjustment must be greater than -100%")
        return adjustment

    def _save_index(self, index: Index) -> None:
        self.storage.save(self.indexes_table, index.id, index.to_dict())

    def _save_update(self, update: IndexMonthlyUpdate) -> None:
        self.storage.save(self.updates_table, update.id, update.to_dict())

    def _index_from_dict(self, data: Dict) -> Index:
        return Index(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            description=data.get('description')
        )

    def _update_from_dict(self, data: Dict) -> IndexMonthlyUpdate:
        return IndexMonthlyUpdate(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            index_id=data['index_id'],
            reference_month=date.fromisoformat(data['reference_month']),
            monthly_adjustment=Decimal(data['monthly_adjustment'])
        )


class IndexAdjustmentCalculator:
    """
    Compounds monthly index adjustments over a window.

    Pure read: nothing is written and no audit event is produced.
    """

    def __init__(self, index_manager: IndexManager):
        self.index_manager = index_manager

    def compound_adjustment(
        self,
        index_id: str,
        start_date: DateLike,
        end_date: DateLike
    ) -> CompoundAdjustment:
        """
        Compound the monthly adjustments between two dates

        Both dates are normalized to the first of their month and the window is
        inclusive on both ends. factor = prod(1 + adj/100); an empty window gives
        factor 1 and percentage 0.

        Raises:
            InvalidIndexDateRange: unparsable dates or start after end
            NotFound: unknown index
        """
        start = self._normalize(start_date, "start_date")
        end = self._normalize(end_date, "end_date")
        if start > end:
            raise InvalidIndexDateRange(
                f"start_date {start.isoformat()} is after end_date {end.isoformat()}"
            )

        self.index_manager.require_index(index_id)
        series = [
            (u.reference_month, u.monthly_adjustment)
            for u in self.index_manager.get_updates(index_id)
            if start <= u.reference_month <= end
        ]

        factor = Decimal('1')
        for _, adjustment in series:
            factor *= Decimal('1') + adjustment / Decimal('100')

        percentage = (factor - Decimal('1')) * Decimal('100')
        logger.debug("Compounded %d months of index %s: factor %s",
                     len(series), index_id, factor)

        return CompoundAdjustment(
            factor=factor,
            percentage=percentage,
            months_applied=len(series),
            series=series
        )

    def _normalize(self, value: DateLike, name: str) -> date:
        try:
            return parse_reference_month(value)
        except (ValueError, TypeError):
            raise InvalidIndexDateRange(f"Invalid {name}: {value!r}")
