"""
Tests for lifecycle status enumerations and transition tables
"""

import pytest

from anticipation_core.status import (
    AnticipationStatus, ReceivableStatus, parse_status, can_transition, ensure_transition
)
from anticipation_core.errors import InvalidStatusError, InvalidStatusTransition


class TestParseStatus:

    def test_known_tags(self):
        assert parse_status(AnticipationStatus, "Aprovada") == AnticipationStatus.APROVADA
        assert parse_status(AnticipationStatus, "Concluída") == AnticipationStatus.CONCLUIDA
        assert parse_status(ReceivableStatus, "antecipado") == ReceivableStatus.ANTECIPADO

    def test_members_pass_through(self):
        assert parse_status(ReceivableStatus, ReceivableStatus.ENVIADO) == ReceivableStatus.ENVIADO

    def test_unknown_tag_rejected(self):
        with pytest.raises(InvalidStatusError):
            parse_status(AnticipationStatus, "aprovada")
        with pytest.raises(InvalidStatusError):
            parse_status(ReceivableStatus, "pago")


class TestTransitions:

    def test_anticipation_lifecycle(self):
        assert can_transition(AnticipationStatus.SOLICITADA, AnticipationStatus.APROVADA)
        assert can_transition(AnticipationStatus.SOLICITADA, AnticipationStatus.REPROVADA)
        assert can_transition(AnticipationStatus.APROVADA, AnticipationStatus.CONCLUIDA)
        assert not can_transition(AnticipationStatus.SOLICITADA, AnticipationStatus.CONCLUIDA)
        assert not can_transition(AnticipationStatus.APROVADA, AnticipationStatus.REPROVADA)

    def test_terminal_states(self):
        for terminal in (AnticipationStatus.REPROVADA, AnticipationStatus.CONCLUIDA):
            for target in AnticipationStatus:
                assert not can_transition(terminal, target)

    def test_receivable_lifecycle(self):
        assert can_transition(ReceivableStatus.ENVIADO, ReceivableStatus.ELEGIVEL_PARA_ANTECIPACAO)
        assert can_transition(ReceivableStatus.ELEGIVEL_PARA_ANTECIPACAO, ReceivableStatus.ANTECIPADO)
        assert not can_transition(ReceivableStatus.ENVIADO, ReceivableStatus.ANTECIPADO)

    def test_ensure_transition_raises(self):
        with pytest.raises(InvalidStatusTransition):
            ensure_transition(AnticipationStatus.REPROVADA, AnticipationStatus.APROVADA)
