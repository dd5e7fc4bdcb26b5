"""
Transaction ledger: the only writer of payment transaction state.

Gateway adapters and the manual verification flow never touch transactions
directly; they hand a normalised ``SettlementEvent`` to ``settle`` which is
idempotent, so a duplicated webhook or a racing IPN/redirect pair credits the
vendor at most once.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Optional, Tuple

from application.dtos.payments import (
    CardSettlement,
    ManualSettlement,
    RedirectSettlement,
    SettlementEvent,
    TransactionResponseDTO,
)
from application.ports.notifier import Notifier, NullNotifier
from application.ports.payment_gateway import CardPaymentGateway, RedirectPaymentGateway
from application.services.access import ensure_can_view, require_vendor
from application.services.config import GatewayConfig, page_window
from application.services.order_service import publish_safely
from core.logging_config import get_logger
from domain.common.actor import Actor
from domain.common.clock import utcnow
from domain.common.exceptions import (
    ConflictError,
    ForbiddenError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
)
from domain.common.money import ZERO, to_money
from domain.common.reference import generate_reference
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderPaymentStatus
from domain.payment.entity import (
    OPEN_STATUSES,
    REFUNDABLE_STATUSES,
    PaymentMethod,
    Transaction,
    TransactionStatus,
    split_commission,
)
from domain.payment.events import PaymentCompleted, PaymentFailed, PaymentRefunded


logger = get_logger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    transaction: Optional[Transaction]
    applied: bool


def refund_idempotency_key(transaction_number: str, cumulative: Decimal) -> str:
    # Stable per (transaction, cumulative refunded) so a retried refund is not charged twice
    base = f"refund|{transaction_number}|{to_money(cumulative)}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def _event_fields(txn: Transaction, order: Optional[Order]) -> dict:
    return {
        "transaction_id": txn.id,
        "transaction_number": txn.transaction_number,
        "order_id": txn.order_id,
        "user_id": txn.user_id,
        "vendor_id": txn.vendor_id,
        "amount": str(txn.amount),
        "currency": txn.currency,
        "payment_method": txn.payment_method.value,
        "customer_email": order.customer_email if order else None,
    }


class TransactionLedger:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        config: GatewayConfig,
        notifier: Optional[Notifier] = None,
        *,
        card_gateway: Optional[CardPaymentGateway] = None,
        redirect_gateway: Optional[RedirectPaymentGateway] = None,
        max_page_size: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self._config = config
        self._notifier = notifier or NullNotifier()
        self._card_gateway = card_gateway
        self._redirect_gateway = redirect_gateway
        self._max_page_size = max_page_size

    @property
    def config(self) -> GatewayConfig:
        return self._config

    # ---- creation ----

    async def initiate(
        self,
        actor: Actor,
        order_id: int,
        method: PaymentMethod,
        *,
        currency: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Tuple[Transaction, Order]:
        """Open a payment transaction for an order the actor owns."""
        now = utcnow()
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            if order.user_id != actor.id:
                raise ForbiddenError("Not authorized to pay for this order")
            if not order.payable:
                raise InvalidStateError(
                    "Order must be accepted before payment",
                    current=order.status.value,
                    action="pay",
                )
            if order.payment_status == OrderPaymentStatus.PAID:
                raise ConflictError("Order is already paid", details={"order_id": order.id})
            active = await uow.transaction_repository.find_active_for_order(order.id)
            if active is not None:
                raise ConflictError(
                    "A payment for this order is already in progress",
                    details={"transaction_number": active.transaction_number},
                )

            commission, vendor_amount = split_commission(order.total_amount, self._config.commission_rate)
            txn = Transaction(
                id=None,
                transaction_number=generate_reference("TXN", now),
                order_id=order.id,
                user_id=order.user_id,
                vendor_id=order.vendor_id,
                amount=order.total_amount,
                currency=currency or self._config.currency,
                payment_method=method,
                commission_rate=self._config.commission_rate,
                commission_amount=commission,
                vendor_amount=vendor_amount,
                status=TransactionStatus.PROCESSING if method.is_manual else TransactionStatus.PENDING,
                metadata=dict(metadata or {}),
                created_at=now,
                updated_at=now,
            )
            created = await uow.transaction_repository.create(txn)

        logger.info(
            "payment_initiated",
            transaction_id=created.id,
            transaction_number=created.transaction_number,
            order_id=order.id,
            method=method.value,
            amount=str(created.amount),
            commission=str(created.commission_amount),
        )
        return created, order

    async def attach_gateway_reference(self, transaction_id: int, values: dict) -> bool:
        """Record intent/session ids while the transaction is still open."""
        values = {**values, "updated_at": utcnow()}
        async with self._uow_factory() as uow:
            return await uow.transaction_repository.transition(transaction_id, OPEN_STATUSES, values)

    async def update_metadata(self, transaction_id: int, metadata: dict) -> Transaction:
        """Merge into metadata of an open transaction (manual proof details)."""
        async with self._uow_factory() as uow:
            txn = await self._require(uow, transaction_id)
            merged = {**txn.metadata, **metadata}
            applied = await uow.transaction_repository.transition(
                txn.id, OPEN_STATUSES, {"metadata": merged, "updated_at": utcnow()}
            )
            if not applied:
                raise InvalidStateError(
                    "Transaction is no longer open",
                    current=txn.status.value,
                    action="update",
                )
            return await uow.transaction_repository.get_by_id(txn.id)

    async def mark_failed(self, transaction_id: int, reason: str, gateway_response: Optional[dict] = None) -> bool:
        """Fail an open transaction after a gateway call could not be made."""
        now = utcnow()
        values: dict[str, Any] = {
            "status": TransactionStatus.FAILED,
            "failure_reason": reason,
            "processed_at": now,
            "updated_at": now,
        }
        if gateway_response:
            values["gateway_response"] = gateway_response
        async with self._uow_factory() as uow:
            txn = await self._require(uow, transaction_id)
            applied = await uow.transaction_repository.transition(txn.id, OPEN_STATUSES, values)
            if applied:
                await uow.order_repository.set_payment_status(
                    txn.order_id, OrderPaymentStatus.FAILED, unless=OrderPaymentStatus.PAID
                )
        logger.warning("payment_marked_failed", transaction_id=transaction_id, reason=reason, applied=applied)
        return applied

    # ---- settlement ----

    async def _require(self, uow: AbstractUnitOfWork, transaction_id: int) -> Transaction:
        txn = await uow.transaction_repository.get_by_id(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        return txn

    @staticmethod
    async def _resolve(uow: AbstractUnitOfWork, event: SettlementEvent) -> Optional[Transaction]:
        repo = uow.transaction_repository
        if event.ref_kind == "number":
            return await repo.get_by_number(event.transaction_ref)
        if event.ref_kind == "stripe_intent":
            return await repo.get_by_stripe_intent(event.transaction_ref)
        try:
            return await repo.get_by_id(int(event.transaction_ref))
        except ValueError:
            return None

    @staticmethod
    def _method_values(txn: Transaction, event: SettlementEvent) -> dict:
        if isinstance(event, CardSettlement):
            return {"stripe_charge_id": event.charge_id} if event.charge_id else {}
        if isinstance(event, RedirectSettlement):
            values = {}
            if event.validation_id:
                values["sslcommerz_validation_id"] = event.validation_id
            if event.bank_tran_id:
                values["sslcommerz_bank_tran_id"] = event.bank_tran_id
            return values
        if isinstance(event, ManualSettlement):
            verification = {
                "verified_by": event.verified_by,
                "verified_at": utcnow().isoformat(),
                "verification_notes": event.notes,
            }
            if event.reference_number:
                verification["reference_number"] = event.reference_number
            return {"metadata": {**txn.metadata, **verification}}
        return {}

    async def _credit_vendor(self, uow: AbstractUnitOfWork, txn: Transaction) -> bool:
        if not await uow.transaction_repository.mark_earnings_credited(txn.id):
            return False
        await uow.vendor_repository.credit_earnings(txn.vendor_id, txn.vendor_amount, txn.commission_amount)
        logger.info(
            "vendor_earnings_credited",
            transaction_id=txn.id,
            vendor_id=txn.vendor_id,
            vendor_amount=str(txn.vendor_amount),
            commission=str(txn.commission_amount),
        )
        return True

    @staticmethod
    def _settleable_statuses(txn: Transaction, event: SettlementEvent) -> frozenset:
        # 卡支付被拒后同一 PaymentIntent 仍可重试，之后的成功事件需要覆盖 failed
        if (
            event.outcome == "success"
            and isinstance(event, CardSettlement)
            and txn.status == TransactionStatus.FAILED
        ):
            return OPEN_STATUSES | {TransactionStatus.FAILED}
        return OPEN_STATUSES

    async def settle(self, event: SettlementEvent) -> SettlementResult:
        """Apply a success/failure signal exactly once; signals for closed transactions are ignored."""
        events: list = []
        async with self._uow_factory() as uow:
            txn = await self._resolve(uow, event)
            if txn is None:
                logger.warning(
                    "settlement_unknown_transaction",
                    ref=event.transaction_ref,
                    ref_kind=event.ref_kind,
                    method=event.payment_method,
                )
                return SettlementResult(None, False)
            if txn.payment_method.value != event.payment_method:
                logger.warning(
                    "settlement_method_mismatch",
                    transaction_id=txn.id,
                    expected=txn.payment_method.value,
                    received=event.payment_method,
                )
                return SettlementResult(txn, False)
            from_statuses = self._settleable_statuses(txn, event)
            if txn.status not in from_statuses:
                logger.info(
                    "settlement_ignored",
                    transaction_id=txn.id,
                    status=txn.status.value,
                    outcome=event.outcome,
                )
                return SettlementResult(txn, False)

            now = utcnow()
            values: dict[str, Any] = {"processed_at": txn.processed_at or now, "updated_at": now}
            values.update(self._method_values(txn, event))
            if event.gateway_metadata:
                values["gateway_response"] = {**txn.gateway_response, **event.gateway_metadata}

            order = await uow.order_repository.get_by_id(txn.order_id)
            if event.outcome == "success":
                values.update(status=TransactionStatus.COMPLETED, completed_at=now, failure_reason=None)
                applied = await uow.transaction_repository.transition(txn.id, from_statuses, values)
                if applied:
                    if order is not None and order.payment_status == OrderPaymentStatus.PAID:
                        # 同一订单的另一笔交易已入账
                        logger.warning(
                            "duplicate_payment",
                            transaction_id=txn.id,
                            order_id=txn.order_id,
                            amount=str(txn.amount),
                        )
                    await uow.order_repository.set_payment_status(txn.order_id, OrderPaymentStatus.PAID)
                    await self._credit_vendor(uow, txn)
                    events.append(PaymentCompleted(**_event_fields(txn, order)))
            else:
                reason = event.reason or "Payment failed"
                values.update(status=TransactionStatus.FAILED, failure_reason=reason)
                applied = await uow.transaction_repository.transition(txn.id, from_statuses, values)
                if applied:
                    await uow.order_repository.set_payment_status(
                        txn.order_id, OrderPaymentStatus.FAILED, unless=OrderPaymentStatus.PAID
                    )
                    events.append(PaymentFailed(**_event_fields(txn, order), reason=reason))

            current = await uow.transaction_repository.get_by_id(txn.id)

        logger.info(
            "settlement_processed",
            transaction_id=txn.id,
            method=event.payment_method,
            outcome=event.outcome,
            applied=applied,
            status=current.status.value if current else None,
        )
        await publish_safely(self._notifier, events, transaction_id=txn.id)
        return SettlementResult(current, applied)

    # ---- refunds ----

    async def _refund_at_gateway(
        self, txn: Transaction, amount: Decimal, cumulative: Decimal, reason: Optional[str]
    ) -> Optional[str]:
        """Returns the provider refund id, or None for manual methods."""
        if txn.payment_method == PaymentMethod.STRIPE:
            if self._card_gateway is None:
                raise GatewayError("card gateway is not configured", provider="stripe")
            if not txn.stripe_payment_intent_id:
                raise GatewayError("transaction has no payment intent", provider="stripe")
            result = await self._card_gateway.refund(
                intent_id=txn.stripe_payment_intent_id,
                amount=amount,
                currency=txn.currency,
                reason=reason,
                idempotency_key=refund_idempotency_key(txn.transaction_number, cumulative),
            )
            return result.refund_id
        if txn.payment_method == PaymentMethod.SSLCOMMERZ:
            if self._redirect_gateway is None:
                raise GatewayError("redirect gateway is not configured", provider="sslcommerz")
            if not txn.sslcommerz_bank_tran_id:
                raise GatewayError("transaction has no bank transaction id", provider="sslcommerz")
            result = await self._redirect_gateway.refund(
                bank_tran_id=txn.sslcommerz_bank_tran_id,
                amount=amount,
                remarks=reason or "Refund",
                reference=f"{txn.transaction_number}-R{to_money(cumulative)}",
            )
            return result.refund_id
        return None

    async def refund(
        self,
        actor: Actor,
        transaction_id: int,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> TransactionResponseDTO:
        """Refund part or all of a completed payment, gateway first, ledger second."""
        async with self._uow_factory(readonly=True) as uow:
            txn = await self._require(uow, transaction_id)
            order = await uow.order_repository.get_by_id(txn.order_id)
        value, cumulative, target = txn.plan_refund(amount)

        try:
            refund_id = await self._refund_at_gateway(txn, value, cumulative, reason)
        except GatewayError as exc:
            logger.error(
                "refund_gateway_failed",
                transaction_id=txn.id,
                provider=exc.provider,
                reason=exc.reason,
                amount=str(value),
            )
            raise

        now = utcnow()
        values: dict[str, Any] = {
            "status": target,
            "refund_amount": cumulative,
            "refund_reason": reason,
            "refunded_at": now,
            "refunded_by": actor.id,
            "updated_at": now,
        }
        if refund_id:
            values["refund_id"] = refund_id
        async with self._uow_factory() as uow:
            applied = await uow.transaction_repository.update_refund(
                txn.id,
                expected_status=txn.status,
                expected_refund_amount=txn.refund_amount,
                values=values,
            )
            if not applied:
                logger.error(
                    "refund_ledger_conflict",
                    transaction_id=txn.id,
                    refund_id=refund_id,
                    amount=str(value),
                )
                raise ConflictError(
                    "Transaction changed while the refund was processed",
                    details={"transaction_id": txn.id, "refund_id": refund_id},
                )
            await uow.order_repository.set_payment_status(txn.order_id, OrderPaymentStatus.REFUNDED)
            updated = await uow.transaction_repository.get_by_id(txn.id)

        logger.info(
            "payment_refunded",
            transaction_id=txn.id,
            amount=str(value),
            total_refunded=str(cumulative),
            status=target.value,
            refunded_by=actor.id,
        )
        event = PaymentRefunded(
            **_event_fields(txn, order),
            refund_amount=str(value),
            total_refunded=str(cumulative),
            status=target.value,
            reason=reason,
        )
        await publish_safely(self._notifier, [event], transaction_id=txn.id)
        return TransactionResponseDTO.from_entity(updated)

    async def record_gateway_refund(
        self, intent_id: str, cumulative: Decimal, refund_id: Optional[str] = None
    ) -> bool:
        """Sync a refund issued from the provider dashboard (charge.refunded)."""
        cumulative = to_money(cumulative)
        events: list = []
        async with self._uow_factory() as uow:
            txn = await uow.transaction_repository.get_by_stripe_intent(intent_id)
            if txn is None:
                logger.warning("gateway_refund_unknown_intent", intent_id=intent_id)
                return False
            if txn.status not in REFUNDABLE_STATUSES or cumulative <= txn.refund_amount:
                logger.info(
                    "gateway_refund_already_recorded",
                    transaction_id=txn.id,
                    status=txn.status.value,
                    refund_amount=str(txn.refund_amount),
                )
                return False
            cumulative = min(cumulative, txn.amount)
            target = (
                TransactionStatus.REFUNDED if cumulative >= txn.amount else TransactionStatus.PARTIALLY_REFUNDED
            )
            now = utcnow()
            values: dict[str, Any] = {
                "status": target,
                "refund_amount": cumulative,
                "refunded_at": now,
                "updated_at": now,
            }
            if refund_id:
                values["refund_id"] = refund_id
            applied = await uow.transaction_repository.update_refund(
                txn.id,
                expected_status=txn.status,
                expected_refund_amount=txn.refund_amount,
                values=values,
            )
            if applied:
                await uow.order_repository.set_payment_status(txn.order_id, OrderPaymentStatus.REFUNDED)
                order = await uow.order_repository.get_by_id(txn.order_id)
                events.append(
                    PaymentRefunded(
                        **_event_fields(txn, order),
                        refund_amount=str(cumulative - txn.refund_amount),
                        total_refunded=str(cumulative),
                        status=target.value,
                    )
                )

        logger.info("gateway_refund_recorded", transaction_id=txn.id, applied=applied, total=str(cumulative))
        await publish_safely(self._notifier, events, transaction_id=txn.id)
        return applied

    # ---- reconciliation ----

    async def reconcile(self, transaction_id: int) -> dict:
        """Re-apply the side effects of a completed payment; safe to run repeatedly."""
        async with self._uow_factory() as uow:
            txn = await self._require(uow, transaction_id)
            if txn.status not in REFUNDABLE_STATUSES:
                raise InvalidStateError(
                    "Only completed transactions can be reconciled",
                    current=txn.status.value,
                    action="reconcile",
                )
            order_paid = False
            if txn.status == TransactionStatus.COMPLETED:
                order_paid = await uow.order_repository.set_payment_status(
                    txn.order_id, OrderPaymentStatus.PAID, unless=OrderPaymentStatus.REFUNDED
                )
            credited = await self._credit_vendor(uow, txn)

        logger.info("transaction_reconciled", transaction_id=txn.id, order_paid=order_paid, credited=credited)
        return {"transaction_id": txn.id, "order_paid": order_paid, "vendor_credited": credited}

    async def reconcile_pending(self, limit: int = 100) -> int:
        async with self._uow_factory(readonly=True) as uow:
            pending = await uow.transaction_repository.list_uncredited_completed(limit=limit)
        credited = 0
        for txn in pending:
            result = await self.reconcile(txn.id)
            credited += int(result["vendor_credited"])
        if pending:
            logger.info("reconciliation_batch_done", scanned=len(pending), credited=credited)
        return credited

    # ---- queries ----

    async def fetch(self, transaction_id: int) -> Transaction:
        """Load without access checks (callers enforce their own rules)."""
        async with self._uow_factory(readonly=True) as uow:
            return await self._require(uow, transaction_id)

    async def fetch_by_number(self, transaction_number: str) -> Optional[Transaction]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.transaction_repository.get_by_number(transaction_number)

    async def get(self, actor: Actor, transaction_id: int) -> TransactionResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            txn = await self._require(uow, transaction_id)
            await ensure_can_view(uow, actor, user_id=txn.user_id, vendor_id=txn.vendor_id)
        return TransactionResponseDTO.from_entity(txn)

    async def _list(self, *, page: int, limit: int, **filters) -> Tuple[List[TransactionResponseDTO], int]:
        skip, limit = page_window(page, limit, self._max_page_size)
        async with self._uow_factory(readonly=True) as uow:
            items = await uow.transaction_repository.list(skip=skip, limit=limit, **filters)
            total = await uow.transaction_repository.count(**filters)
        return [TransactionResponseDTO.from_entity(t) for t in items], int(total)

    async def list_for_user(
        self, actor: Actor, *, status: Optional[TransactionStatus] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[TransactionResponseDTO], int]:
        return await self._list(user_id=actor.id, status=status, page=page, limit=limit)

    async def list_for_vendor(
        self, actor: Actor, *, status: Optional[TransactionStatus] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[TransactionResponseDTO], int]:
        async with self._uow_factory(readonly=True) as uow:
            vendor = await require_vendor(uow, actor)
        return await self._list(vendor_id=vendor.id, status=status, page=page, limit=limit)

    async def list_all(
        self,
        *,
        status: Optional[TransactionStatus] = None,
        method: Optional[PaymentMethod] = None,
        methods: Optional[Iterable[PaymentMethod]] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[TransactionResponseDTO], int]:
        if method is not None:
            methods = [method]
        return await self._list(status=status, methods=methods, page=page, limit=limit)

    async def statistics(
        self,
        *,
        vendor_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        methods: Optional[Iterable[PaymentMethod]] = None,
    ) -> dict:
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.transaction_repository.statistics(vendor_id=vendor_id, start=start, end=end, methods=methods)
        earning = {TransactionStatus.COMPLETED.value, TransactionStatus.PARTIALLY_REFUNDED.value}
        settled = [r for r in rows if r["status"] in earning]
        return {
            "total_transactions": sum(r["count"] for r in rows),
            "total_amount": sum((r["amount"] for r in settled), ZERO),
            "total_commission": sum((r["commission_amount"] for r in settled), ZERO),
            "total_vendor_amount": sum((r["vendor_amount"] for r in settled), ZERO),
            "by_status": {
                r["status"]: {"count": r["count"], "amount": r["amount"]} for r in rows
            },
        }

    async def revenue_by_day(
        self, *, start: datetime, end: datetime, vendor_id: Optional[int] = None
    ) -> List[dict]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.transaction_repository.revenue_by_day(start=start, end=end, vendor_id=vendor_id)
