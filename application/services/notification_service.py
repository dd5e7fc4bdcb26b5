"""
Turn domain events into outbound email messages.

Rendering is pure; delivery belongs to whatever Notifier the composition root
wires in (Celery in production, a recorder in tests).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from domain.order import events as order_events
from domain.payment import events as payment_events
from domain.payout import events as payout_events


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    body: str
    event: str
    event_id: str

    def as_task_kwargs(self) -> dict:
        return {
            "to": self.to,
            "subject": self.subject,
            "body": self.body,
            "event": self.event,
            "event_id": self.event_id,
        }


def _msg(event, to: Optional[str], subject: str, body: str) -> list[EmailMessage]:
    if not to:
        return []
    return [EmailMessage(to=to, subject=subject, body=body, event=type(event).__name__, event_id=event.event_id)]


def _order_placed(e: order_events.OrderPlaced) -> list[EmailMessage]:
    when = f"{e.scheduled_date} {e.scheduled_time}"
    return _msg(
        e, e.customer_email,
        f"Order {e.order_number} placed",
        f"Your booking for {e.service_name} on {when} was received. Total: {e.total_amount}.",
    ) + _msg(
        e, e.vendor_email,
        f"New order {e.order_number}",
        f"A new booking for {e.service_name} on {when} is waiting for your response.",
    )


def _order_accepted(e: order_events.OrderAccepted) -> list[EmailMessage]:
    body = f"Your order {e.order_number} was accepted."
    if e.notes:
        body += f"\nVendor notes: {e.notes}"
    return _msg(e, e.customer_email, f"Order {e.order_number} accepted", body)


def _order_rejected(e: order_events.OrderRejected) -> list[EmailMessage]:
    return _msg(
        e, e.customer_email,
        f"Order {e.order_number} rejected",
        f"Your order {e.order_number} was rejected. Reason: {e.reason}",
    )


def _order_started(e: order_events.OrderStarted) -> list[EmailMessage]:
    return _msg(e, e.customer_email, f"Order {e.order_number} in progress", "The vendor has started your service.")


def _order_completed(e: order_events.OrderCompleted) -> list[EmailMessage]:
    return _msg(
        e, e.customer_email,
        f"Order {e.order_number} completed",
        "Your service is complete. We would love to hear your feedback.",
    )


def _order_cancelled(e: order_events.OrderCancelled) -> list[EmailMessage]:
    return _msg(
        e, e.customer_email,
        f"Order {e.order_number} cancelled",
        f"Your order was cancelled by {e.cancelled_by}. Reason: {e.reason}",
    )


def _order_rescheduled(e: order_events.OrderRescheduled) -> list[EmailMessage]:
    return _msg(
        e, e.customer_email,
        f"Order {e.order_number} rescheduled",
        f"Moved from {e.previous_date} {e.previous_time} to {e.new_date} {e.new_time} by {e.rescheduled_by}.",
    )


def _payment_completed(e: payment_events.PaymentCompleted) -> list[EmailMessage]:
    return _msg(
        e, e.customer_email,
        f"Payment received ({e.transaction_number})",
        f"We received {e.amount} {e.currency} via {e.payment_method}.",
    )


def _payment_failed(e: payment_events.PaymentFailed) -> list[EmailMessage]:
    return _msg(
        e, e.customer_email,
        f"Payment failed ({e.transaction_number})",
        f"Your payment of {e.amount} {e.currency} could not be completed. {e.reason or ''}".strip(),
    )


def _payment_refunded(e: payment_events.PaymentRefunded) -> list[EmailMessage]:
    return _msg(
        e, e.customer_email,
        f"Refund issued ({e.transaction_number})",
        f"{e.refund_amount} {e.currency} was refunded. Total refunded: {e.total_refunded}.",
    )


def _payout_changed(e: payout_events.PayoutEvent) -> list[EmailMessage]:
    state = {
        payout_events.PayoutRequested: "requested",
        payout_events.PayoutApproved: "approved",
        payout_events.PayoutRejected: "rejected",
        payout_events.PayoutCompleted: "completed",
    }.get(type(e), "updated")
    return _msg(
        e, e.vendor_email,
        f"Payout {e.payout_number} {state}",
        f"Payout {e.payout_number} for {e.amount} {e.currency} was {state}.",
    )


_RENDERERS: dict[type, Callable[[object], list[EmailMessage]]] = {
    order_events.OrderPlaced: _order_placed,
    order_events.OrderAccepted: _order_accepted,
    order_events.OrderRejected: _order_rejected,
    order_events.OrderStarted: _order_started,
    order_events.OrderCompleted: _order_completed,
    order_events.OrderCancelled: _order_cancelled,
    order_events.OrderRescheduled: _order_rescheduled,
    payment_events.PaymentCompleted: _payment_completed,
    payment_events.PaymentFailed: _payment_failed,
    payment_events.PaymentRefunded: _payment_refunded,
    payout_events.PayoutRequested: _payout_changed,
    payout_events.PayoutApproved: _payout_changed,
    payout_events.PayoutRejected: _payout_changed,
    payout_events.PayoutCompleted: _payout_changed,
}


def render(event: object) -> list[EmailMessage]:
    """Events without a template (e.g. CouponApplied) produce no mail."""
    renderer = _RENDERERS.get(type(event))
    return renderer(event) if renderer else []
