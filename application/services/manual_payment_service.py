"""
Manual payments (cash, bank transfer): customer submits, admin verifies.
"""
from __future__ import annotations

from typing import List, Tuple

from application.dtos.payments import (
    ManualPaymentRequest,
    ManualSettlement,
    ProofUploadRequest,
    TransactionResponseDTO,
    VerificationStatsDTO,
    VerifyPaymentRequest,
)
from application.services.ledger_service import TransactionLedger
from core.logging_config import get_logger
from domain.common.actor import Actor
from domain.common.clock import utcnow
from domain.common.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from domain.common.money import ZERO
from domain.payment.entity import PaymentMethod, Transaction, TransactionStatus


logger = get_logger(__name__)

MANUAL_METHODS = (PaymentMethod.CASH, PaymentMethod.BANK_TRANSFER)
REJECTED_REASON = "Payment verification failed"


def _ensure_manual_processing(txn: Transaction, action: str) -> None:
    if not txn.payment_method.is_manual:
        raise ValidationError("Not a manual payment", field="payment_method")
    if txn.status != TransactionStatus.PROCESSING:
        raise InvalidStateError(
            f"Cannot {action} transaction with status {txn.status.value}",
            current=txn.status.value,
            action=action,
        )


class ManualPaymentService:
    def __init__(self, ledger: TransactionLedger) -> None:
        self._ledger = ledger

    async def submit(self, actor: Actor, dto: ManualPaymentRequest) -> TransactionResponseDTO:
        metadata = {"submitted_at": utcnow().isoformat()}
        if dto.reference_number:
            metadata["reference_number"] = dto.reference_number
        if dto.notes:
            metadata["notes"] = dto.notes
        txn, _ = await self._ledger.initiate(
            actor, dto.order_id, PaymentMethod(dto.payment_method), metadata=metadata
        )
        logger.info("manual_payment_submitted", transaction_id=txn.id, method=txn.payment_method.value)
        return TransactionResponseDTO.from_entity(txn)

    async def upload_proof(self, actor: Actor, transaction_id: int, dto: ProofUploadRequest) -> TransactionResponseDTO:
        txn = await self._ledger.fetch(transaction_id)
        if txn.user_id != actor.id:
            raise ForbiddenError("Not authorized to update this transaction")
        _ensure_manual_processing(txn, "upload proof for")

        updated = await self._ledger.update_metadata(
            txn.id,
            {
                "payment_proof_url": dto.proof_url,
                "proof_details": dto.details or {},
                "proof_uploaded_at": utcnow().isoformat(),
            },
        )
        logger.info("payment_proof_uploaded", transaction_id=txn.id, user_id=actor.id)
        return TransactionResponseDTO.from_entity(updated)

    async def verify(self, actor: Actor, transaction_id: int, dto: VerifyPaymentRequest) -> TransactionResponseDTO:
        txn = await self._ledger.fetch(transaction_id)
        _ensure_manual_processing(txn, "verify")

        approve = dto.action == "approve"
        result = await self._ledger.settle(
            ManualSettlement(
                transaction_ref=str(txn.id),
                ref_kind="id",
                payment_method=txn.payment_method.value,
                outcome="success" if approve else "failure",
                reason=None if approve else (dto.notes or REJECTED_REASON),
                verified_by=actor.id,
                reference_number=dto.reference_number,
                notes=dto.notes,
            )
        )
        if not result.applied:
            raise ConflictError("Transaction was already verified", details={"transaction_id": txn.id})

        logger.info("manual_payment_verified", transaction_id=txn.id, action=dto.action, admin_id=actor.id)
        return TransactionResponseDTO.from_entity(result.transaction)

    async def pending_verifications(
        self, *, page: int = 1, limit: int = 20
    ) -> Tuple[List[TransactionResponseDTO], int]:
        return await self._ledger.list_all(
            status=TransactionStatus.PROCESSING, methods=MANUAL_METHODS, page=page, limit=limit
        )

    async def verification_stats(self) -> VerificationStatsDTO:
        stats = await self._ledger.statistics(methods=MANUAL_METHODS)
        by_status = stats["by_status"]

        def count(*statuses: TransactionStatus) -> int:
            return sum(by_status.get(s.value, {}).get("count", 0) for s in statuses)

        return VerificationStatsDTO(
            pending=count(TransactionStatus.PROCESSING),
            approved=count(
                TransactionStatus.COMPLETED,
                TransactionStatus.PARTIALLY_REFUNDED,
                TransactionStatus.REFUNDED,
            ),
            rejected=count(TransactionStatus.FAILED),
            pending_amount=by_status.get(TransactionStatus.PROCESSING.value, {}).get("amount", ZERO),
        )
