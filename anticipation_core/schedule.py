"""
Installment Schedule Store

Persistence of payment plan settings and their installments. Derived figures
(recebiveis, saldo_devedor, fundo_reserva, devolucao) are written only by the
recalculation engine.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import uuid

from .currency import Money, Currency, to_decimal
from .storage import StorageInterface, StorageRecord
from .errors import NotFound, ValidationError


DERIVED_FIELDS = ('recebiveis', 'saldo_devedor', 'fundo_reserva', 'devolucao')


@dataclass
class PaymentPlanSettings(StorageRecord):
    """Plan-level configuration; the settings id doubles as the plan id"""
    anticipation_request_id: str
    project_id: str
    dia_cobranca: int                       # Billing day of month, 1-31
    teto_fundo_reserva: Money               # Reserve fund ceiling
    index_id: Optional[str] = None
    adjustment_base_date: Optional[date] = None

    def __post_init__(self):
        if not 1 <= self.dia_cobranca <= 31:
            raise ValidationError(f"dia_cobranca must be between 1 and 31, got {self.dia_cobranca}")
        if self.teto_fundo_reserva.is_negative():
            raise ValidationError("teto_fundo_reserva cannot be negative")

    @property
    def currency(self) -> Currency:
        return self.teto_fundo_reserva.currency


@dataclass
class Installment(StorageRecord):
    """One period of a payment plan"""
    payment_plan_settings_id: str
    project_id: str
    numero_parcela: int                     # 0-based
    data_vencimento: date                   # Fixed at creation
    pmt: Any                                # Raw pricing input, may be missing or malformed
    recebiveis: Money = None
    saldo_devedor: Money = None
    fundo_reserva: Money = None
    devolucao: Money = None

    def __post_init__(self):
        for name in DERIVED_FIELDS:
            if getattr(self, name) is None:
                setattr(self, name, Money.zero())

    @property
    def pmt_amount(self) -> Optional[Money]:
        """pmt as Money, or None when it is missing, not numeric or negative"""
        currency = self.recebiveis.currency
        try:
            amount = to_decimal(self.pmt, currency)
        except ValueError:
            return None
        if amount < 0:
            return None
        return Money(amount, currency)


class ScheduleStore:
    """
    Reads and writes plan settings and installments
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.settings_table = "payment_plan_settings"
        self.installments_table = "payment_plan_installments"

    # Settings

    def save_settings(self, settings: PaymentPlanSettings) -> None:
        self.storage.save(self.settings_table, settings.id, self._settings_to_dict(settings))

    def get_settings(self, plan_id: str) -> Optional[PaymentPlanSettings]:
        """Get plan settings by plan ID"""
        data = self.storage.load(self.settings_table, plan_id)
        if data:
            return self._settings_from_dict(data)
        return None

    def require_settings(self, plan_id: str) -> PaymentPlanSettings:
        settings = self.get_settings(plan_id)
        if settings is None:
            raise NotFound("payment_plan", plan_id)
        return settings

    def find_settings_for_request(self, anticipation_request_id: str) -> Optional[PaymentPlanSettings]:
        rows = self.storage.find(self.settings_table, {
            "anticipation_request_id": anticipation_request_id
        })
        if rows:
            return self._settings_from_dict(rows[0])
        return None

    def list_settings(self, project_id: Optional[str] = None) -> List[PaymentPlanSettings]:
        """Plans, optionally restricted to one project, oldest first"""
        if project_id:
            rows = self.storage.find(self.settings_table, {"project_id": project_id})
        else:
            rows = self.storage.load_all(self.settings_table)
        plans = [self._settings_from_dict(row) for row in rows]
        plans.sort(key=lambda p: p.created_at)
        return plans

    # Installments

    def add_installment(
        self,
        settings: PaymentPlanSettings,
        numero_parcela: int,
        data_vencimento: date,
        pmt: Any
    ) -> Installment:
        """Materialize an installment with zeroed derived figures"""
        now = datetime.now(timezone.utc)
        zero = Money.zero(settings.currency)
        installment = Installment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            payment_plan_settings_id=settings.id,
            project_id=settings.project_id,
            numero_parcela=numero_parcela,
            data_vencimento=data_vencimento,
            pmt=pmt,
            recebiveis=zero,
            saldo_devedor=zero,
            fundo_reserva=zero,
            devolucao=zero
        )
        self.storage.save(self.installments_table, installment.id,
                          self._installment_to_dict(installment))
        return installment

    def get_installment(self, installment_id: str) -> Optional[Installment]:
        data = self.storage.load(self.installments_table, installment_id)
        if data:
            return self._installment_from_dict(data)
        return None

    def require_installment(self, installment_id: str) -> Installment:
        installment = self.get_installment(installment_id)
        if installment is None:
            raise NotFound("installment", installment_id)
        return installment

    def get_installments(self, plan_id: str) -> List[Installment]:
        """Installments of a plan in numero_parcela order"""
        rows = self.storage.find(self.installments_table, {
            "payment_plan_settings_id": plan_id
        })
        installments = [self._installment_from_dict(row) for row in rows]
        installments.sort(key=lambda i: i.numero_parcela)
        return installments

    def write_figures(self, installment_id: str, figures: Dict[str, Money]) -> None:
        """
        Overwrite the derived figures of one installment.

        The stored document is merged so fields owned by other writers
        (the raw pmt in particular) are kept as they are.
        """
        existing = self.storage.load(self.installments_table, installment_id)
        if existing is None:
            raise NotFound("installment", installment_id)
        for name, value in figures.items():
            if name not in DERIVED_FIELDS:
                raise ValueError(f"{name} is not a derived installment field")
            existing[name] = str(value.amount)
        existing['updated_at'] = datetime.now(timezone.utc).isoformat()
        self.storage.save(self.installments_table, installment_id, existing)

    def delete_plan_records(self, plan_id: str) -> int:
        """Remove settings and installments of a plan, returning the installment count"""
        removed = self.storage.delete_where(self.installments_table, {
            "payment_plan_settings_id": plan_id
        })
        self.storage.delete(self.settings_table, plan_id)
        return removed

    # Serialization

    def _settings_to_dict(self, settings: PaymentPlanSettings) -> Dict:
        return {
            'id': settings.id,
            'created_at': settings.created_at.isoformat(),
            'updated_at': settings.updated_at.isoformat(),
            'anticipation_request_id': settings.anticipation_request_id,
            'project_id': settings.project_id,
            'dia_cobranca': settings.dia_cobranca,
            'teto_fundo_reserva': str(settings.teto_fundo_reserva.amount),
            'currency': settings.currency.code,
            'index_id': settings.index_id,
            'adjustment_base_date': (
                settings.adjustment_base_date.isoformat()
                if settings.adjustment_base_date else None
            )
        }

    def _settings_from_dict(self, data: Dict) -> PaymentPlanSettings:
        base_date = data.get('adjustment_base_date')
        return PaymentPlanSettings(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            anticipation_request_id=data['anticipation_request_id'],
            project_id=data['project_id'],
            dia_cobranca=data['dia_cobranca'],
            teto_fundo_reserva=Money(
                Decimal(data['teto_fundo_reserva']),
                Currency[data.get('currency', 'BRL')]
            ),
            index_id=data.get('index_id'),
            adjustment_base_date=date.fromisoformat(base_date) if base_date else None
        )

    def _installment_to_dict(self, installment: Installment) -> Dict:
        pmt = installment.pmt
        if isinstance(pmt, Decimal):
            pmt = str(pmt)
        result = {
            'id': installment.id,
            'created_at': installment.created_at.isoformat(),
            'updated_at': installment.updated_at.isoformat(),
            'payment_plan_settings_id': installment.payment_plan_settings_id,
            'project_id': installment.project_id,
            'numero_parcela': installment.numero_parcela,
            'data_vencimento': installment.data_vencimento.isoformat(),
            'pmt': pmt,
            'currency': installment.recebiveis.currency.code
        }
        for name in DERIVED_FIELDS:
            result[name] = str(getattr(installment, name).amount)
        return result

    def _installment_from_dict(self, data: Dict) -> Installment:
        currency = Currency[data.get('currency', 'BRL')]

        def get_money(name: str) -> Money:
            return Money(Decimal(data.get(name) or '0'), currency)

        return Installment(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            payment_plan_settings_id=data['payment_plan_settings_id'],
            project_id=data['project_id'],
            numero_parcela=data['numero_parcela'],
            data_vencimento=date.fromisoformat(data['data_vencimento']),
            pmt=data.get('pmt'),
            recebiveis=get_money('recebiveis'),
            saldo_devedor=get_money('saldo_devedor'),
            fundo_reserva=get_money('fundo_reserva'),
            devolucao=get_money('devolucao')
        )
