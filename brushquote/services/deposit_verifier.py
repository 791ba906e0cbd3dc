# brushquote/services/deposit_verifier.py
"""
Deposit verification.

1. Stored reference equals the submitted one -> idempotent success.
2. Stored reference differs -> conflict, nothing is overwritten.
3. Ask the gateway for the intent and branch on its status.
4. On ``succeeded`` the amount (minor units) and the quote id in the intent
   metadata must both match.
5. Compare-and-set write: deposit reference, status and portal window land
   in one UPDATE guarded on ``status='accepted' AND reference IS NULL``.

If the gateway confirmed the charge but step 5 cannot be written, a
``ConsistencyError`` carrying the payment reference is raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brushquote.core.errors import (
    ConsistencyError,
    PaymentFailedError,
    PaymentProcessingError,
    StateConflictError,
    ValidationError,
)
from brushquote.core.logging_config import logger
from brushquote.core.timeutil import as_utc, utcnow
from brushquote.models.contractor_settings import ContractorSettings
from brushquote.models.quote import Quote
from brushquote.observability.metrics import deposit_verify_counter, transition_counter
from brushquote.repositories.quotes import cas_mark_deposit_verified
from brushquote.services.notifications import queue_notification
from brushquote.services.payment_gateway import (
    GatewayError,
    GatewayTimeout,
    PaymentGateway,
    is_payment_intent_id,
)
from brushquote.workflow.proposal_state import DEFAULT_PORTAL_DURATION_DAYS
from brushquote.workflow.status import ProposalStatus


def to_minor_units(amount: float) -> int:
    return int(round(float(amount) * 100))


@dataclass(frozen=True)
class DepositResult:
    portal_open: bool
    portal_expires_at: Optional[datetime]
    payment_reference: str
    replayed: bool = False


class DepositVerifier:
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        contractor: Optional[ContractorSettings] = None,
        *,
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.contractor = contractor
        self.now = now or utcnow()

    def _portal_days(self) -> int:
        days = getattr(self.contractor, "portal_duration_days", None) if self.contractor else None
        return int(days) if days else DEFAULT_PORTAL_DURATION_DAYS

    def _result(self, quote: Quote, replayed: bool) -> DepositResult:
        return DepositResult(
            portal_open=quote.portal_open,
            portal_expires_at=quote.portal_expires_at,
            payment_reference=quote.deposit_transaction_id,
            replayed=replayed,
        )

    def verify(self, quote: Quote, payment_reference: Optional[str]) -> DepositResult:
        ref = (payment_reference or "").strip()
        log = logger.bind(tenant_id=quote.tenant_id, quote_id=quote.id, payment_reference=ref)
        if not ref:
            raise ValidationError("payment_intent_id is required", code="PAYMENT_REFERENCE_REQUIRED")
        if not is_payment_intent_id(ref):
            deposit_verify_counter.labels(result="rejected").inc()
            log.warning("deposit_verify_malformed_reference")
            raise ValidationError(
                "payment_intent_id is not a valid payment reference", code="INVALID_PAYMENT_REFERENCE"
            )

        # 1 + 2: previously verified
        if quote.deposit_transaction_id:
            if quote.deposit_transaction_id == ref:
                deposit_verify_counter.labels(result="replay").inc()
                log.info("deposit_verify_replay")
                return self._result(quote, replayed=True)
            deposit_verify_counter.labels(result="conflict").inc()
            log.warning("deposit_verify_conflict", stored_reference=quote.deposit_transaction_id)
            raise StateConflictError(
                "A different payment is already recorded for this proposal",
                code="PAYMENT_CONFLICT",
            )

        status = ProposalStatus.parse(quote.status)
        if status != ProposalStatus.ACCEPTED:
            raise StateConflictError(
                "Proposal must be accepted before a deposit can be verified",
                details={"status": status.value},
            )

        # 3: gateway
        try:
            intent = self.gateway.retrieve_payment_intent(ref)
        except GatewayTimeout:
            deposit_verify_counter.labels(result="processing").inc()
            log.warning("deposit_verify_gateway_timeout")
            raise PaymentProcessingError(
                "Payment gateway did not answer in time, retry shortly",
                details={"payment_reference": ref},
            )
        except GatewayError as e:
            if e.retryable:
                deposit_verify_counter.labels(result="processing").inc()
                log.warning("deposit_verify_gateway_unavailable", error=str(e))
                raise PaymentProcessingError(
                    "Payment gateway unavailable, retry shortly",
                    code="GATEWAY_UNAVAILABLE",
                    details={"payment_reference": ref},
                )
            deposit_verify_counter.labels(result="failed").inc()
            log.warning("deposit_verify_gateway_rejected", error=str(e))
            raise PaymentFailedError(
                "Payment could not be found", code="PAYMENT_NOT_FOUND", details={"payment_reference": ref}
            )

        if intent.status == "processing":
            deposit_verify_counter.labels(result="processing").inc()
            raise PaymentProcessingError("Payment is still processing", details={"payment_status": intent.status})
        if intent.status == "requires_payment_method":
            deposit_verify_counter.labels(result="failed").inc()
            raise PaymentFailedError("Payment failed, try another payment method", details={"payment_status": intent.status})
        if intent.status == "canceled":
            deposit_verify_counter.labels(result="failed").inc()
            raise PaymentFailedError("Payment was canceled", code="PAYMENT_CANCELED", details={"payment_status": intent.status})
        if intent.status != "succeeded":
            deposit_verify_counter.labels(result="failed").inc()
            raise PaymentFailedError(
                f"Unexpected payment status: {intent.status}",
                code="PAYMENT_UNEXPECTED_STATUS",
                details={"payment_status": intent.status},
            )

        # 4: amount + metadata
        expected = to_minor_units(quote.deposit_amount or 0)
        if intent.amount != expected:
            deposit_verify_counter.labels(result="mismatch").inc()
            log.warning("deposit_verify_amount_mismatch", expected=expected, charged=intent.amount)
            raise PaymentFailedError(
                "Charged amount does not match the deposit",
                code="AMOUNT_MISMATCH",
                details={"expected_cents": expected, "charged_cents": intent.amount},
            )
        if str(intent.metadata.get("quote_id", "")) != str(quote.id):
            deposit_verify_counter.labels(result="mismatch").inc()
            log.warning("deposit_verify_proposal_mismatch", metadata_quote_id=intent.metadata.get("quote_id"))
            raise PaymentFailedError(
                "Payment does not belong to this proposal", code="PROPOSAL_MISMATCH"
            )

        # 5: compare-and-set
        closes_at = self.now + timedelta(days=self._portal_days())
        try:
            won = cas_mark_deposit_verified(
                self.db,
                quote.id,
                transaction_id=ref,
                verified_at=self.now,
                portal_closes_at=closes_at,
            )
            self.db.flush()
        except SQLAlchemyError as e:
            deposit_verify_counter.labels(result="inconsistent").inc()
            log.error("deposit_verify_persist_failed", error=str(e))
            raise ConsistencyError(
                "Payment succeeded but the proposal could not be updated. Contact support.",
                payment_reference=ref,
            ) from e

        self.db.refresh(quote)
        if not won:
            # a concurrent request settled first: same reference is a replay
            if quote.deposit_transaction_id == ref:
                deposit_verify_counter.labels(result="replay").inc()
                return self._result(quote, replayed=True)
            deposit_verify_counter.labels(result="conflict").inc()
            raise StateConflictError(
                "A different payment is already recorded for this proposal",
                code="PAYMENT_CONFLICT",
            )

        transition_counter.labels(
            from_status=ProposalStatus.ACCEPTED.value, to_status=ProposalStatus.DEPOSIT_PAID.value
        ).inc()
        deposit_verify_counter.labels(result="verified").inc()
        log.info(
            "proposal_transition",
            from_status=ProposalStatus.ACCEPTED.value,
            to_status=ProposalStatus.DEPOSIT_PAID.value,
            portal_expires_at=closes_at.isoformat(),
        )

        recipient = quote.owner_email or (self.contractor.notification_email if self.contractor else None)
        queue_notification(
            self.db,
            tenant_id=quote.tenant_id,
            quote_id=quote.id,
            event="deposit_verified",
            recipient=recipient,
            payload={
                "quote_number": quote.quote_number,
                "customer_name": quote.customer_name,
                "deposit_amount": quote.deposit_amount,
                "payment_reference": ref,
                "portal_expires_at": as_utc(quote.portal_closed_at).isoformat(),
            },
        )
        return self._result(quote, replayed=False)
