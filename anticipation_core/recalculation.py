"""
Amortization Recalculation Engine

Recomputes every installment of a plan in numero_parcela order:

    balance := seed (valor_total or valor_liquido), reserve := 0
    installment 0:
        balance := max(0, balance - pmt)
        collected > pmt:  reserve := min(collected - pmt, ceiling)
                          devolucao := max(0, collected - pmt - ceiling)
        otherwise:        reserve := 0, devolucao := 0
    installment i > 0:
        balance := max(0, balance - pmt)
        reserve := reserve + (collected - pmt)
        reserve > ceiling: devolucao := reserve - ceiling, reserve := ceiling
        otherwise:         devolucao := 0

Figures are computed in memory and then written as one atomic batch, so a
failed write leaves the previous schedule untouched.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .currency import Money
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .errors import MissingPricingInput, RecalculationPartialFailure, ValidationError
from .schedule import ScheduleStore, Installment
from .ledger import BillingLedger
from .anticipations import AnticipationManager
from .logging_config import get_logger, log_action


logger = get_logger("antecipa.recalculation")

BALANCE_SEEDS = ("valor_total", "valor_liquido")


@dataclass
class InstallmentFigures:
    """Derived figures of one installment after a pass"""
    installment_id: str
    numero_parcela: int
    recebiveis: Money
    saldo_devedor: Money
    fundo_reserva: Money
    devolucao: Money

    def as_dict(self) -> Dict[str, Money]:
        return {
            'recebiveis': self.recebiveis,
            'saldo_devedor': self.saldo_devedor,
            'fundo_reserva': self.fundo_reserva,
            'devolucao': self.devolucao
        }


@dataclass
class RecalculationResult:
    plan_id: str
    figures: List[InstallmentFigures] = field(default_factory=list)
    skipped: List[MissingPricingInput] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.figures)


def compute_schedule(
    installments: List[Installment],
    collected: Dict[str, Money],
    seed: Money,
    ceiling: Money,
    reserve_floor_at_zero: bool = False
) -> Tuple[List[InstallmentFigures], List[MissingPricingInput]]:
    """
    Run the amortization recurrence without touching storage.

    Installments without a usable pmt are reported in the second element and
    leave the running balance and reserve unchanged.
    """
    zero = Money.zero(seed.currency)
    balance = seed
    reserve = zero
    figures = []
    skipped = []

    for installment in sorted(installments, key=lambda i: i.numero_parcela):
        pmt = installment.pmt_amount
        if pmt is None:
            skipped.append(MissingPricingInput(
                installment.id, installment.numero_parcela, installment.pmt
            ))
            continue

        received = collected.get(installment.id, zero)
        balance = max(zero, balance - pmt)

        if installment.numero_parcela == 0:
            if received > pmt:
                surplus = received - pmt
                reserve = min(surplus, ceiling)
                devolucao = max(zero, surplus - ceiling)
            else:
                reserve = zero
                devolucao = zero
        else:
            reserve = reserve + (received - pmt)
            if reserve_floor_at_zero and reserve.is_negative():
                reserve = zero
            if reserve > ceiling:
                devolucao = reserve - ceiling
                reserve = ceiling
            else:
                devolucao = zero

        figures.append(InstallmentFigures(
            installment_id=installment.id,
            numero_parcela=installment.numero_parcela,
            recebiveis=received,
            saldo_devedor=balance,
            fundo_reserva=reserve,
            devolucao=devolucao
        ))

    return figures, skipped


class RecalculationEngine:
    """
    Full, synchronous recalculation of a payment plan
    """

    def __init__(
        self,
        storage: StorageInterface,
        schedule_store: ScheduleStore,
        ledger: BillingLedger,
        anticipation_manager: AnticipationManager,
        audit_trail: AuditTrail,
        balance_seed: str = "valor_total",
        reserve_floor_at_zero: bool = False
    ):
        if balance_seed not in BALANCE_SEEDS:
            raise ValidationError(f"balance_seed must be one of {', '.join(BALANCE_SEEDS)}")
        self.storage = storage
        self.schedule_store = schedule_store
        self.ledger = ledger
        self.anticipation_manager = anticipation_manager
        self.audit_trail = audit_trail
        self.balance_seed = balance_seed
        self.reserve_floor_at_zero = reserve_floor_at_zero

    def recalculate(self, plan_id: str, correlation_id: Optional[str] = None) -> RecalculationResult:
        """
        Recompute and persist the figures of every installment of a plan

        Raises:
            NotFound: unknown plan or anticipation request
            RecalculationPartialFailure: the batch write failed and was rolled back
        """
        settings = self.schedule_store.require_settings(plan_id)
        request = self.anticipation_manager.require_request(settings.anticipation_request_id)
        seed = getattr(request, self.balance_seed)

        installments = self.schedule_store.get_installments(plan_id)
        collected = {
            i.id: self.ledger.collected_amount(i.id, settings.currency)
            for i in installments
        }

        figures, skipped = compute_schedule(
            installments,
            collected,
            seed=seed,
            ceiling=settings.teto_fundo_reserva,
            reserve_floor_at_zero=self.reserve_floor_at_zero
        )

        for missing in skipped:
            log_action(logger, "warning", missing.message,
                       action="skip_installment",
                       resource=f"installment:{missing.installment_id}",
                       correlation_id=correlation_id,
                       extra={"plan_id": plan_id, "numero_parcela": missing.numero_parcela})

        try:
            with self.storage.atomic():
                for item in figures:
                    self.schedule_store.write_figures(item.installment_id, item.as_dict())
        except Exception as e:
            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_RECALCULATION_FAILED,
                entity_type="payment_plan",
                entity_id=plan_id,
                metadata={"error": str(e)}
            )
            log_action(logger, "error", f"Recalculation write failed: {e}",
                       action="recalculate_plan",
                       resource=f"payment_plan:{plan_id}",
                       correlation_id=correlation_id)
            raise RecalculationPartialFailure(plan_id, e) from e

        self.audit_trail.log_event(
            event_type=AuditEventType.PLAN_RECALCULATED,
            entity_type="payment_plan",
            entity_id=plan_id,
            metadata={
                "installments_updated": len(figures),
                "installments_skipped": [m.numero_parcela for m in skipped],
                "balance_seed": self.balance_seed
            }
        )
        log_action(logger, "info", "Payment plan recalculated",
                   action="recalculate_plan",
                   resource=f"payment_plan:{plan_id}",
                   correlation_id=correlation_id,
                   extra={"updated": len(figures), "skipped": len(skipped)})

        return RecalculationResult(plan_id=plan_id, figures=figures, skipped=skipped)
