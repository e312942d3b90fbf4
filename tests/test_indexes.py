"""
Test suite for monetary indexes

Tests index management, the monthly update series and compounding of
adjustments over a date window.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime

from anticipation_core.storage import InMemoryStorage
from anticipation_core.audit import AuditTrail, AuditEventType
from anticipation_core.indexes import (
    IndexManager, IndexAdjustmentCalculator, parse_reference_month
)
from anticipation_core.errors import NotFound, ValidationError, InvalidIndexDateRange


class TestParseReferenceMonth:

    def test_formats(self):
        assert parse_reference_month("2024-03") == date(2024, 3, 1)
        assert parse_reference_month("2024-03-17") == date(2024, 3, 1)
        assert parse_reference_month(date(2024, 3, 17)) == date(2024, 3, 1)
        assert parse_reference_month(datetime(2024, 3, 17, 10, 0)) == date(2024, 3, 1)

    def test_invalid(self):
        for value in ["", "2024-13", "2024/03", "march", None]:
            with pytest.raises(ValueError):
                parse_reference_month(value)


class TestIndexManager:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.manager = IndexManager(self.storage, self.audit_trail)

    def test_create_update_and_list(self):
        igpm = self.manager.create_index("IGP-M", "Índice Geral de Preços")
        ipca = self.manager.create_index("IPCA")

        self.manager.update_index(ipca.id, description="Inflação oficial")

        names = [i.name for i in self.manager.list_indexes()]
        assert names == ["IGP-M", "IPCA"]
        assert self.manager.require_index(ipca.id).description == "Inflação oficial"
        assert self.manager.get_index(igpm.id).name == "IGP-M"

    def test_create_requires_name(self):
        with pytest.raises(ValidationError):
            self.manager.create_index("  ")

    def test_record_updates_ordered_by_month(self):
        ipca = self.manager.create_index("IPCA")
        self.manager.record_update(ipca.id, "2024-03", "0.16")
        self.manager.record_update(ipca.id, "2024-01", "0.42")
        self.manager.record_update(ipca.id, "2024-02", "0,83")

        updates = self.manager.get_updates(ipca.id)
        assert [u.reference_month for u in updates] == [
            date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)
        ]
        assert updates[1].monthly_adjustment == Decimal("0.83")

    def test_one_update_per_month(self):
        ipca = self.manager.create_index("IPCA")
        self.manager.record_update(ipca.id, "2024-01", "0.42")

        with pytest.raises(ValidationError):
            self.manager.record_update(ipca.id, "2024-01-20", "0.50")

    def test_invalid_update_inputs(self):
        ipca = self.manager.create_index("IPCA")
        with pytest.raises(ValidationError):
            self.manager.record_update(ipca.id, "01/2024", "0.42")
        with pytest.raises(ValidationError):
            self.manager.record_update(ipca.id, "2024-01", "abc")
        with pytest.raises(NotFound):
            self.manager.record_update("missing", "2024-01", "0.42")

    def test_change_and_delete_update(self):
        ipca = self.manager.create_index("IPCA")
        update = self.manager.record_update(ipca.id, "2024-01", "0.42")

        changed = self.manager.change_update(update.id, "0.50")
        assert changed.monthly_adjustment == Decimal("0.50")

        self.manager.delete_update(update.id)
        assert self.manager.get_updates(ipca.id) == []
        with pytest.raises(NotFound):
            self.manager.require_update(update.id)

    def test_delete_index_removes_updates(self):
        ipca = self.manager.create_index("IPCA")
        self.manager.record_update(ipca.id, "2024-01", "0.42")
        self.manager.record_update(ipca.id, "2024-02", "0.83")

        self.manager.delete_index(ipca.id)

        assert self.manager.get_index(ipca.id) is None
        assert self.storage.count("index_updates") == 0
        events = self.audit_trail.get_events_by_type(AuditEventType.INDEX_DELETED)
        assert events[0].metadata["updates_removed"] == 2


class TestIndexAdjustmentCalculator:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.manager = IndexManager(self.storage, AuditTrail(self.storage))
        self.calculator = IndexAdjustmentCalculator(self.manager)
        self.index = self.manager.create_index("IPCA")

    def test_empty_series_is_neutral(self):
        result = self.calculator.compound_adjustment(self.index.id, "2024-01-01", "2024-06-30")

        assert result.factor == Decimal("1")
        assert result.percentage == Decimal("0")
        assert result.months_applied == 0
        assert result.series == []

    def test_compounds_positive_and_negative_months(self):
        self.manager.record_update(self.index.id, "2024-01", "1")
        self.manager.record_update(self.index.id, "2024-02", "2")
        self.manager.record_update(self.index.id, "2024-03", "-1")

        result = self.calculator.compound_adjustment(self.index.id, "2024-01-15", "2024-03-10")

        assert result.factor == Decimal("1.019898")
        assert result.percentage == Decimal("1.9898")
        assert result.months_applied == 3

    def test_window_is_inclusive_by_month(self):
        for month, adjustment in [("2023-12", "5"), ("2024-01", "1"), ("2024-02", "2"), ("2024-03", "3")]:
            self.manager.record_update(self.index.id, month, adjustment)

        result = self.calculator.compound_adjustment(self.index.id, date(2024, 1, 31), date(2024, 2, 1))

        assert [month for month, _ in result.series] == [date(2024, 1, 1), date(2024, 2, 1)]
        assert result.factor == Decimal("1.0302")

    def test_single_month_window(self):
        self.manager.record_update(self.index.id, "2024-05", "0.46")
        result = self.calculator.compound_adjustment(self.index.id, "2024-05-01", "2024-05-31")
        assert result.factor == Decimal("1.0046")

    def test_start_after_end_rejected(self):
        with pytest.raises(InvalidIndexDateRange):
            self.calculator.compound_adjustment(self.index.id, "2024-05-01", "2024-04-30")

    def test_unparsable_dates_rejected(self):
        with pytest.raises(InvalidIndexDateRange):
            self.calculator.compound_adjustment(self.index.id, "not-a-date", "2024-04-30")
        with pytest.raises(InvalidIndexDateRange):
            self.calculator.compound_adjustment(self.index.id, "2024-01-01", None)

    def test_unknown_index(self):
        with pytest.raises(NotFound):
            self.calculator.compound_adjustment("missing", "2024-01-01", "2024-02-01")

    def test_is_read_only(self):
        self.manager.record_update(self.index.id, "2024-01", "1")
        before = self.storage.count("audit_events")
        self.calculator.compound_adjustment(self.index.id, "2024-01-01", "2024-02-01")
        assert self.storage.count("audit_events") == before
