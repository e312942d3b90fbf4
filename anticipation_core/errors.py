"""
Domain Error Taxonomy

Every error raised by the engine derives from AnticipationError and carries
the HTTP status the API layer answers with.
"""

from typing import Optional


class AnticipationError(Exception):
    """Base exception for all engine errors"""
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code


class NotFound(AnticipationError):
    """Referenced installment, link, plan, index or receivable does not exist"""
    status_code = 404

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class CrossProjectViolation(AnticipationError):
    """Receivables belong to a different project than the installment's plan"""
    status_code = 422

    def __init__(self, project_id: str, receivable_ids):
        ids = list(receivable_ids)
        super().__init__(
            f"Receivables do not belong to project {project_id}: {', '.join(ids)}"
        )
        self.project_id = project_id
        self.receivable_ids = ids


class CrossPlanViolation(AnticipationError):
    """An installment does not belong to the expected plan"""
    status_code = 422


class RecalculationPartialFailure(AnticipationError):
    """
    Writing recalculated figures failed. The batch was rolled back and the
    previous schedule is still in place; re-running the recalculation converges.
    """
    status_code = 500

    def __init__(self, plan_id: str, cause: Exception):
        super().__init__(f"Recalculation of plan {plan_id} failed: {cause}")
        self.plan_id = plan_id
        self.cause = cause


class MissingPricingInput(AnticipationError):
    """An installment lacks a usable pmt and was skipped by the recalculation"""
    status_code = 422

    def __init__(self, installment_id: str, numero_parcela: int, raw_value=None):
        super().__init__(
            f"Installment {numero_parcela} ({installment_id}) has no usable pmt: {raw_value!r}"
        )
        self.installment_id = installment_id
        self.numero_parcela = numero_parcela
        self.raw_value = raw_value


class InvalidIndexDateRange(AnticipationError):
    """Malformed, unparsable or reversed dates passed to the index calculator"""
    status_code = 400


class InvalidStatusError(AnticipationError):
    """Unknown lifecycle status tag"""
    status_code = 400


class InvalidStatusTransition(AnticipationError):
    """Transition not allowed by the lifecycle table"""
    status_code = 409


class PlanAlreadyExists(AnticipationError):
    """An anticipation request already owns a payment plan"""
    status_code = 409


class ImmutableSettingsError(AnticipationError):
    """Plan settings other than index configuration cannot change once installments exist"""
    status_code = 409


class ValidationError(AnticipationError):
    """Invalid input for bootstrap, index or registry operations"""
    status_code = 400
