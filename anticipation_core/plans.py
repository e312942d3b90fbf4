"""
Payment Plan Service

Entry point for every operation on a payment plan: bootstrap, ledger
mutations, recalculation, index configuration, value projection and deletion.
Mutations of a plan and the recalculation that follows them run under the
plan's lock.
"""

from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
import calendar
import uuid

from .currency import Money, Currency, to_decimal
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .errors import (
    NotFound, PlanAlreadyExists, ImmutableSettingsError, ValidationError,
    RecalculationPartialFailure, CrossPlanViolation
)
from .anticipations import AnticipationManager
from .receivables import ReceivableRegistry
from .indexes import IndexManager, IndexAdjustmentCalculator, CompoundAdjustment
from .schedule import ScheduleStore, PaymentPlanSettings, Installment
from .ledger import BillingLedger, AttachResult
from .recalculation import RecalculationEngine, RecalculationResult
from .locks import PlanLockRegistry
from .status import AnticipationStatus
from .logging_config import get_logger, log_action


logger = get_logger("antecipa.plans")

INDEX_SETTING_FIELDS = ("index_id", "adjustment_base_date")


@dataclass
class PlanDetail:
    """Plan settings with its ordered installments"""
    settings: PaymentPlanSettings
    installments: List[Installment] = field(default_factory=list)
    warning: Optional[str] = None


@dataclass
class PlanMutationResult:
    """Outcome of a ledger mutation followed by a recalculation"""
    plan_id: str
    attach: Optional[AttachResult] = None
    removed_receivable_id: Optional[str] = None
    recalculation: Optional[RecalculationResult] = None
    warning: Optional[str] = None


@dataclass
class AdjustedValue:
    """Face value of a linked receivable projected with the plan's index"""
    face_value: Money
    adjusted_value: Money
    adjustment: Optional[CompoundAdjustment] = None


def installment_due_date(first_due_date: date, dia_cobranca: int, offset: int) -> date:
    """Due date ``offset`` months after the first, on the billing day clamped to month end"""
    month = first_due_date.month - 1 + offset
    year = first_due_date.year + month // 12
    month = month % 12 + 1
    day = min(dia_cobranca, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _as_date(value, field_name: str) -> Optional[date]:
    """Accept a date, a datetime or an ISO date string"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Invalid {field_name}: {value!r}")


class PaymentPlanService:
    """
    Coordinates the ledger, the schedule store and the recalculation engine
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        anticipation_manager: AnticipationManager,
        receivable_registry: ReceivableRegistry,
        index_manager: IndexManager,
        schedule_store: ScheduleStore,
        ledger: BillingLedger,
        engine: RecalculationEngine,
        calculator: IndexAdjustmentCalculator,
        locks: Optional[PlanLockRegistry] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.anticipation_manager = anticipation_manager
        self.receivable_registry = receivable_registry
        self.index_manager = index_manager
        self.schedule_store = schedule_store
        self.ledger = ledger
        self.engine = engine
        self.calculator = calculator
        self.locks = locks or PlanLockRegistry()

    def bootstrap_plan(
        self,
        anticipation_request_id: str,
        dia_cobranca: int,
        teto_fundo_reserva: Money,
        pmts: List[Any],
        first_due_date: date,
        index_id: Optional[str] = None,
        adjustment_base_date: Optional[date] = None
    ) -> PlanDetail:
        """
        Create the settings and installments of an approved anticipation

        Installments 0..N-1 receive the supplied pmt values verbatim and zeroed
        derived figures; one recalculation pass then fills the figures in.

        Raises:
            NotFound: unknown anticipation request or index
            ValidationError: request not approved, no pmts or bad settings
            PlanAlreadyExists: the request already owns a plan
        """
        request = self.anticipation_manager.require_request(anticipation_request_id)
        if request.status != AnticipationStatus.APROVADA:
            raise ValidationError(
                f"Anticipation {request.id} is {request.status.value}; only Aprovada requests get a plan"
            )
        if self.schedule_store.find_settings_for_request(request.id):
            raise PlanAlreadyExists(f"Anticipation {request.id} already has a payment plan")
        if not pmts:
            raise ValidationError("At least one installment pmt is required")
        self._reject_negative_pmts(pmts, teto_fundo_reserva.currency)
        if index_id:
            self.index_manager.require_index(index_id)

        now = datetime.now(timezone.utc)
        settings = PaymentPlanSettings(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            anticipation_request_id=request.id,
            project_id=request.project_id,
            dia_cobranca=dia_cobranca,
            teto_fundo_reserva=teto_fundo_reserva,
            index_id=index_id,
            adjustment_base_date=adjustment_base_date or (first_due_date if index_id else None)
        )

        with self.locks.hold(settings.id):
            with self.storage.atomic():
                self.schedule_store.save_settings(settings)
                for numero, pmt in enumerate(pmts):
                    self.schedule_store.add_installment(
                        settings,
                        numero_parcela=numero,
                        data_vencimento=installment_due_date(first_due_date, dia_cobranca, numero),
                        pmt=pmt
                    )

            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_CREATED,
                entity_type="payment_plan",
                entity_id=settings.id,
                metadata={
                    "anticipation_request_id": request.id,
                    "project_id": request.project_id,
                    "installments": len(pmts),
                    "dia_cobranca": dia_cobranca,
                    "teto_fundo_reserva": teto_fundo_reserva.to_string()
                }
            )
            log_action(logger, "info", "Payment plan created",
                       action="bootstrap_plan",
                       resource=f"payment_plan:{settings.id}",
                       extra={"installments": len(pmts)})

            warning = self._recalculate_after_mutation(settings.id)

        detail = self.get_plan_detail(settings.id)
        detail.warning = warning
        return detail

    def get_plan_detail(self, plan_id: str) -> PlanDetail:
        settings = self.schedule_store.require_settings(plan_id)
        return PlanDetail(settings, self.schedule_store.get_installments(plan_id))

    def list_plans(self, project_id: Optional[str] = None) -> List[PaymentPlanSettings]:
        return self.schedule_store.list_settings(project_id)

    def attach_receivables(
        self,
        installment_id: str,
        receivable_ids: List[str],
        correlation_id: Optional[str] = None,
        plan_id: Optional[str] = None
    ) -> PlanMutationResult:
        """
        Attach receivables to an installment and recalculate its plan

        When ``plan_id`` is given the installment must belong to that plan.
        """
        plan_id = self._plan_of_installment(installment_id, plan_id)

        with self.locks.hold(plan_id):
            attach = self.ledger.attach(installment_id, receivable_ids)
            result = PlanMutationResult(plan_id=plan_id, attach=attach)
            self._recalculate_into(result, correlation_id)
        return result

    def detach_receivable(
        self,
        installment_id: str,
        link_id: str,
        correlation_id: Optional[str] = None,
        plan_id: Optional[str] = None
    ) -> PlanMutationResult:
        """Detach one receivable from an installment and recalculate its plan"""
        plan_id = self._plan_of_installment(installment_id, plan_id)

        with self.locks.hold(plan_id):
            removed = self.ledger.detach(installment_id, link_id)
            result = PlanMutationResult(plan_id=plan_id, removed_receivable_id=removed)
            self._recalculate_into(result, correlation_id)
        return result

    def recalculate_plan(self, plan_id: str, correlation_id: Optional[str] = None) -> RecalculationResult:
        """Standalone recalculation; failures propagate"""
        with self.locks.hold(plan_id):
            return self.engine.recalculate(plan_id, correlation_id=correlation_id)

    def compute_compound_adjustment(self, index_id: str, start_date, end_date) -> CompoundAdjustment:
        return self.calculator.compound_adjustment(index_id, start_date, end_date)

    def update_index_settings(
        self,
        plan_id: str,
        index_id: Optional[str],
        adjustment_base_date: Optional[date] = None
    ) -> PlanDetail:
        """
        Change the index configuration of a plan, then recalculate

        Passing ``index_id=None`` removes the index configuration.
        """
        adjustment_base_date = _as_date(adjustment_base_date, "adjustment_base_date")
        with self.locks.hold(plan_id):
            settings = self.schedule_store.require_settings(plan_id)
            if index_id:
                self.index_manager.require_index(index_id)

            previous = {
                "index_id": settings.index_id,
                "adjustment_base_date": settings.adjustment_base_date
            }
            settings.index_id = index_id or None
            if not index_id:
                settings.adjustment_base_date = None
            elif adjustment_base_date is not None:
                settings.adjustment_base_date = adjustment_base_date
            elif settings.adjustment_base_date is None:
                settings.adjustment_base_date = settings.created_at.date()
            settings.updated_at = datetime.now(timezone.utc)
            self.schedule_store.save_settings(settings)

            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_INDEX_SETTINGS_CHANGED,
                entity_type="payment_plan",
                entity_id=plan_id,
                metadata={
                    "old": previous,
                    "new": {
                        "index_id": settings.index_id,
                        "adjustment_base_date": settings.adjustment_base_date
                    }
                }
            )
            warning = self._recalculate_after_mutation(plan_id)

        detail = self.get_plan_detail(plan_id)
        detail.warning = warning
        return detail

    def update_settings(self, plan_id: str, changes: Dict[str, Any]) -> PlanDetail:
        """
        Apply a settings change. Only the index configuration may change once
        installments exist.

        Raises:
            ImmutableSettingsError: for any other field
        """
        self.schedule_store.require_settings(plan_id)
        frozen = sorted(k for k in changes if k not in INDEX_SETTING_FIELDS)
        if frozen:
            raise ImmutableSettingsError(
                f"Settings {', '.join(frozen)} cannot change once installments exist"
            )
        current = self.schedule_store.require_settings(plan_id)
        return self.update_index_settings(
            plan_id,
            changes.get("index_id", current.index_id),
            changes.get("adjustment_base_date")
        )

    def project_link_value(self, link_id: str, as_of: date) -> AdjustedValue:
        """
        Project the face value of a linked receivable with the plan's index

        Returns the face value unchanged when the plan has no index.
        """
        link = self.ledger.get_link(link_id)
        if link is None:
            raise NotFound("receivable_link", link_id)
        settings = self.schedule_store.require_settings(link.payment_plan_settings_id)
        face_value = self.receivable_registry.require_receivable(link.receivable_id).amount

        if not settings.index_id:
            return AdjustedValue(face_value=face_value, adjusted_value=face_value)

        base_date = settings.adjustment_base_date or settings.created_at.date()
        adjustment = self.calculator.compound_adjustment(settings.index_id, base_date, as_of)
        adjusted = face_value * (Decimal('1') + adjustment.percentage / Decimal('100'))
        return AdjustedValue(face_value=face_value, adjusted_value=adjusted, adjustment=adjustment)

    def delete_plan(self, plan_id: str) -> None:
        """Delete settings, installments, links and billing documents of a plan"""
        with self.locks.hold(plan_id):
            self.schedule_store.require_settings(plan_id)
            installments = self.schedule_store.get_installments(plan_id)

            with self.storage.atomic():
                links_removed = sum(
                    self.ledger.remove_links_for_installment(i.id) for i in installments
                )
                self.schedule_store.delete_plan_records(plan_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_DELETED,
                entity_type="payment_plan",
                entity_id=plan_id,
                metadata={
                    "installments_removed": len(installments),
                    "links_removed": links_removed
                }
            )
            log_action(logger, "info", "Payment plan deleted",
                       action="delete_plan",
                       resource=f"payment_plan:{plan_id}",
                       extra={"links_removed": links_removed})
        self.locks.discard(plan_id)

    def _reject_negative_pmts(self, pmts: List[Any], currency: Currency) -> None:
        # Unparsable values are kept and skipped by the recalculation
        for numero, pmt in enumerate(pmts):
            try:
                amount = to_decimal(pmt, currency)
            except ValueError:
                continue
            if amount < 0:
                raise ValidationError(f"pmt of installment {numero} cannot be negative: {pmt!r}")

    def _plan_of_installment(self, installment_id: str, expected_plan_id: Optional[str]) -> str:
        installment = self.schedule_store.require_installment(installment_id)
        plan_id = installment.payment_plan_settings_id
        if expected_plan_id and expected_plan_id != plan_id:
            raise CrossPlanViolation(
                f"Installment {installment_id} belongs to plan {plan_id}, not {expected_plan_id}"
            )
        return plan_id

    def _recalculate_into(self, result: PlanMutationResult, correlation_id: Optional[str]) -> None:
        try:
            result.recalculation = self.engine.recalculate(result.plan_id, correlation_id=correlation_id)
        except RecalculationPartialFailure as e:
            result.warning = e.message

    def _recalculate_after_mutation(self, plan_id: str) -> Optional[str]:
        try:
            self.engine.recalculate(plan_id)
        except RecalculationPartialFailure as e:
            return e.message
        return None
