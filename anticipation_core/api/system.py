"""
System wiring and the FastAPI dependency that hands it to the routers
"""

from typing import Optional

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..anticipations import AnticipationManager
from ..receivables import ReceivableRegistry
from ..indexes import IndexManager, IndexAdjustmentCalculator
from ..schedule import ScheduleStore
from ..ledger import BillingLedger
from ..recalculation import RecalculationEngine
from ..locks import PlanLockRegistry
from ..plans import PaymentPlanService
from ..config import AnticipationConfig, get_config


class AnticipationSystem:
    """Payment plan engine with all components initialized"""

    def __init__(self, storage: StorageInterface, config: Optional[AnticipationConfig] = None):
        config = config or get_config()
        self.config = config
        self.storage = storage

        self.audit_trail = AuditTrail(self.storage, enabled=config.enable_audit_logging)
        self.anticipation_manager = AnticipationManager(self.storage, self.audit_trail)
        self.receivable_registry = ReceivableRegistry(self.storage, self.audit_trail)
        self.index_manager = IndexManager(self.storage, self.audit_trail)
        self.calculator = IndexAdjustmentCalculator(self.index_manager)
        self.schedule_store = ScheduleStore(self.storage)
        self.ledger = BillingLedger(
            self.storage, self.schedule_store, self.receivable_registry, self.audit_trail,
            max_receivables_per_attach=config.max_receivables_per_attach
        )
        self.engine = RecalculationEngine(
            self.storage, self.schedule_store, self.ledger,
            self.anticipation_manager, self.audit_trail,
            balance_seed=config.balance_seed,
            reserve_floor_at_zero=config.reserve_floor_at_zero
        )
        self.plan_service = PaymentPlanService(
            self.storage, self.audit_trail, self.anticipation_manager,
            self.receivable_registry, self.index_manager, self.schedule_store,
            self.ledger, self.engine, self.calculator,
            locks=PlanLockRegistry()
        )

    @classmethod
    def from_config(cls, config: Optional[AnticipationConfig] = None) -> 'AnticipationSystem':
        config = config or get_config()
        return cls(create_storage(config.database_url), config)


_system: Optional[AnticipationSystem] = None


def get_system() -> AnticipationSystem:
    """Dependency returning the process-wide system, built on first use"""
    global _system
    if _system is None:
        _system = AnticipationSystem.from_config()
    return _system
