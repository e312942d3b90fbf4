"""
Lifecycle Status Module

Closed status enumerations for anticipation requests and receivables, each
with an explicit transition table. Unknown tags are rejected where they enter
the system.
"""

from enum import Enum
from typing import Dict, FrozenSet, Type, TypeVar

from .errors import InvalidStatusError, InvalidStatusTransition


class AnticipationStatus(Enum):
    """Anticipation request lifecycle"""
    SOLICITADA = "Solicitada"    # Requested by the company
    APROVADA = "Aprovada"        # Approved, owns a payment plan
    REPROVADA = "Reprovada"      # Rejected (terminal)
    CONCLUIDA = "Concluída"      # Fully repaid (terminal)


class ReceivableStatus(Enum):
    """Receivable lifecycle"""
    ENVIADO = "enviado"
    ELEGIVEL_PARA_ANTECIPACAO = "elegivel_para_antecipacao"
    REPROVADO = "reprovado"
    ANTECIPADO = "antecipado"


ANTICIPATION_TRANSITIONS: Dict[AnticipationStatus, FrozenSet[AnticipationStatus]] = {
    AnticipationStatus.SOLICITADA: frozenset({
        AnticipationStatus.APROVADA,
        AnticipationStatus.REPROVADA,
    }),
    AnticipationStatus.APROVADA: frozenset({AnticipationStatus.CONCLUIDA}),
    AnticipationStatus.REPROVADA: frozenset(),
    AnticipationStatus.CONCLUIDA: frozenset(),
}

RECEIVABLE_TRANSITIONS: Dict[ReceivableStatus, FrozenSet[ReceivableStatus]] = {
    ReceivableStatus.ENVIADO: frozenset({
        ReceivableStatus.ELEGIVEL_PARA_ANTECIPACAO,
        ReceivableStatus.REPROVADO,
    }),
    ReceivableStatus.ELEGIVEL_PARA_ANTECIPACAO: frozenset({
        ReceivableStatus.ANTECIPADO,
        ReceivableStatus.REPROVADO,
    }),
    ReceivableStatus.REPROVADO: frozenset(),
    ReceivableStatus.ANTECIPADO: frozenset(),
}

_TRANSITIONS = {
    AnticipationStatus: ANTICIPATION_TRANSITIONS,
    ReceivableStatus: RECEIVABLE_TRANSITIONS,
}

S = TypeVar("S", AnticipationStatus, ReceivableStatus)


def parse_status(enum_cls: Type[S], value) -> S:
    """
    Convert a raw tag into a status member.

    Raises:
        InvalidStatusError: if the tag is not part of the enumeration
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidStatusError(
            f"Unknown {enum_cls.__name__} '{value}'. Allowed: {allowed}"
        )


def can_transition(current: S, target: S) -> bool:
    """Check the transition table for current -> target"""
    return target in _TRANSITIONS[type(current)][current]


def ensure_transition(current: S, target: S) -> None:
    """
    Raises:
        InvalidStatusTransition: if the table does not allow current -> target
    """
    if not can_transition(current, target):
        raise InvalidStatusTransition(
            f"Cannot move from {current.value} to {target.value}"
        )
