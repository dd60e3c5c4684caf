"""
Payment schedule entries stored on ``Booking.payment_milestones``.

Milestones are kept as a JSON list on the booking row. This module converts
between that stored form and immutable ``Milestone`` values and holds the
helpers used to build a default schedule.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Iterator, Mapping, Union
from uuid import uuid4

from .statuses import MilestoneStatus, UnknownStatusError, normalize_milestone_status

logger = logging.getLogger(__name__)

DEPOSIT_MILESTONE_NAME = "Deposit"
FINAL_MILESTONE_NAME = "Final Payment"
DEFAULT_DEPOSIT_RATE = Decimal("0.20")
FINAL_PAYMENT_LEAD_DAYS = 30
CENT = Decimal("0.01")


class MilestoneFormatError(ValueError):
    """A stored milestone entry cannot be turned into a ``Milestone``."""


def to_money(value: Any) -> Decimal:
    """Coerce a stored or submitted amount into a two-place ``Decimal``."""
    if isinstance(value, bool):
        raise MilestoneFormatError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise MilestoneFormatError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise MilestoneFormatError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def new_milestone_id() -> str:
    return uuid4().hex[:8]


@dataclass(frozen=True)
class Milestone:
    id: str
    name: str
    amount: Decimal
    status: MilestoneStatus = MilestoneStatus.PENDING
    due_date: str | None = None
    percentage: Decimal | None = None
    paid_at: str | None = None
    stripe_checkout_session_id: str | None = None
    stripe_payment_intent_id: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == MilestoneStatus.PAID

    @property
    def is_deposit(self) -> bool:
        return self.name == DEPOSIT_MILESTONE_NAME

    def mark_paid(
        self,
        *,
        paid_at: str,
        checkout_session_id: str | None = None,
        payment_intent_id: str | None = None,
    ) -> "Milestone":
        """Return the paid version of this milestone; already paid entries are returned as-is."""
        if self.is_paid:
            return self
        return replace(
            self,
            status=MilestoneStatus.PAID,
            paid_at=paid_at,
            stripe_checkout_session_id=checkout_session_id or self.stripe_checkout_session_id,
            stripe_payment_intent_id=payment_intent_id or self.stripe_payment_intent_id,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Milestone":
        if not isinstance(data, Mapping):
            raise MilestoneFormatError(f"Milestone entry must be an object, got {type(data).__name__}")
        milestone_id = data.get("id")
        if milestone_id in (None, ""):
            raise MilestoneFormatError("Milestone entry is missing an id")
        if "amount" not in data:
            raise MilestoneFormatError(f"Milestone {milestone_id} is missing an amount")
        try:
            status = normalize_milestone_status(data.get("status"))
        except UnknownStatusError as exc:
            raise MilestoneFormatError(str(exc)) from exc
        percentage = data.get("percentage")
        return cls(
            id=str(milestone_id),
            name=str(data.get("name") or ""),
            amount=to_money(data["amount"]),
            status=status,
            due_date=data.get("due_date") or None,
            percentage=Decimal(str(percentage)) if percentage not in (None, "") else None,
            paid_at=data.get("paid_at") or None,
            stripe_checkout_session_id=data.get("stripe_checkout_session_id") or None,
            stripe_payment_intent_id=data.get("stripe_payment_intent_id") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "amount": str(self.amount),
            "percentage": str(self.percentage) if self.percentage is not None else None,
            "due_date": self.due_date,
            "status": self.status.value,
            "paid_at": self.paid_at,
            "stripe_checkout_session_id": self.stripe_checkout_session_id,
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
        }


@dataclass(frozen=True)
class UnreadableMilestone:
    """A stored entry ``Milestone.from_dict`` rejects, written back exactly as found."""

    raw: Any

    def to_dict(self) -> Any:
        return self.raw


ScheduleEntry = Union[Milestone, UnreadableMilestone]


def _read_entry(entry: Any) -> ScheduleEntry:
    try:
        return Milestone.from_dict(entry)
    except MilestoneFormatError as exc:
        logger.warning("Unreadable payment milestone (%s); leaving it untouched.", exc)
        return UnreadableMilestone(entry)


def readable(milestones: Iterable[ScheduleEntry]) -> Iterator[Milestone]:
    return (m for m in milestones if isinstance(m, Milestone))


def parse_milestones(raw: Any) -> list[ScheduleEntry]:
    """
    Normalize the stored ``payment_milestones`` value.

    Accepts the JSON list itself, a serialized JSON string or ``None``. A value
    that does not decode to a list yields an empty schedule. List entries that
    cannot be read come back as ``UnreadableMilestone`` and count towards no
    total.
    """
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Unparsable payment_milestones value; treating as empty.")
            return []
        if raw is None:
            return []
    if not isinstance(raw, list):
        logger.warning("payment_milestones is %s, not a list; treating as empty.", type(raw).__name__)
        return []
    return [_read_entry(entry) for entry in raw]


def dump_milestones(milestones: Iterable[ScheduleEntry]) -> list[Any]:
    return [milestone.to_dict() for milestone in milestones]


def find_deposit(milestones: Iterable[ScheduleEntry]) -> Milestone | None:
    return next((m for m in readable(milestones) if m.is_deposit), None)


def find_milestone(milestones: Iterable[ScheduleEntry], milestone_id: str) -> Milestone | None:
    return next((m for m in readable(milestones) if m.id == milestone_id), None)


def scheduled_total(milestones: Iterable[ScheduleEntry]) -> Decimal:
    return sum((m.amount for m in readable(milestones)), Decimal("0.00"))


def paid_total(milestones: Iterable[ScheduleEntry]) -> Decimal:
    return sum((m.amount for m in readable(milestones) if m.is_paid), Decimal("0.00"))


def outstanding_total(milestones: Iterable[ScheduleEntry]) -> Decimal:
    return sum((m.amount for m in readable(milestones) if not m.is_paid), Decimal("0.00"))


def calculate_deposit_amount(total_price: Decimal, deposit_rate: Decimal = DEFAULT_DEPOSIT_RATE) -> Decimal:
    return (Decimal(total_price) * Decimal(deposit_rate)).quantize(CENT, rounding=ROUND_HALF_UP)


def effective_deposit_amount(total_price: Decimal, deposit_amount: Decimal | None) -> Decimal:
    """The booking's deposit, falling back to the default share of the total."""
    if deposit_amount is not None:
        return Decimal(deposit_amount)
    return calculate_deposit_amount(total_price)


def generate_standard_milestones(
    total_price: Decimal,
    deposit_amount: Decimal,
    event_date: date,
    *,
    today: date | None = None,
) -> list[Milestone]:
    """
    Build the default two-step schedule: a deposit due today and the balance
    due thirty days before the event.
    """
    today = today or date.today()
    final_due = event_date - timedelta(days=FINAL_PAYMENT_LEAD_DAYS)
    deposit = to_money(deposit_amount)
    return [
        Milestone(
            id=new_milestone_id(),
            name=DEPOSIT_MILESTONE_NAME,
            amount=deposit,
            due_date=today.isoformat(),
        ),
        Milestone(
            id=new_milestone_id(),
            name=FINAL_MILESTONE_NAME,
            amount=to_money(total_price) - deposit,
            due_date=final_due.isoformat(),
        ),
    ]
