"""
DTOs -- Immutable views of pawn records handed back to callers.

Responsibility:
    Services and selectors return these frozen dataclasses instead of ORM
    instances, so callers cannot mutate a pledge outside a lifecycle
    transition and nothing lazy-loads after the session closes.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.
    from_model() class methods are boundary converters invoked only from
    the service and selector layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from pawn_kernel.domain.lifecycle import ItemStatus, PledgeStatus
from pawn_kernel.domain.values import (
    ZERO,
    GoldPriceSnapshot,
    PaymentSplit,
    RateSchedule,
    RateType,
    StoneDeduction,
)

if TYPE_CHECKING:
    from pawn_kernel.models.day_end import DayEndReport
    from pawn_kernel.models.pledge import Pledge, PledgeItem
    from pawn_kernel.models.redemption import Redemption
    from pawn_kernel.models.renewal import Renewal, RenewalInterestBreakdown
    from pawn_kernel.models.storage import ItemLocationHistory, Slot


def _payment(model) -> PaymentSplit:
    return PaymentSplit(
        cash=model.cash_amount,
        transfer=model.transfer_amount,
        reference_no=model.reference_no,
    )


@dataclass(frozen=True)
class PledgeItemInfo:
    id: UUID
    item_no: str
    category: str
    purity_code: str
    description: str | None
    gross_weight: Decimal
    deduction: StoneDeduction
    deducted_weight: Decimal
    net_weight: Decimal
    price_per_gram: Decimal
    gross_value: Decimal
    deduction_amount: Decimal
    net_value: Decimal
    status: ItemStatus
    vault_id: UUID | None = None
    box_id: UUID | None = None
    slot_id: UUID | None = None
    redemption_id: UUID | None = None

    @classmethod
    def from_model(cls, model: PledgeItem) -> PledgeItemInfo:
        return cls(
            id=model.id,
            item_no=model.item_no,
            category=model.category,
            purity_code=model.purity_code,
            description=model.description,
            gross_weight=model.gross_weight,
            deduction=model.deduction,
            deducted_weight=model.deducted_weight,
            net_weight=model.net_weight,
            price_per_gram=model.price_per_gram,
            gross_value=model.gross_value,
            deduction_amount=model.deduction_amount,
            net_value=model.net_value,
            status=ItemStatus(model.status),
            vault_id=model.vault_id,
            box_id=model.box_id,
            slot_id=model.slot_id,
            redemption_id=model.redemption_id,
        )


@dataclass(frozen=True)
class PledgeInfo:
    """A pledge with its items, as of the moment it was read."""

    id: UUID
    branch_id: UUID
    customer_id: UUID
    owner_id: UUID | None
    pledge_no: str
    receipt_no: str
    status: PledgeStatus
    total_gross_weight: Decimal
    total_weight: Decimal
    gross_value: Decimal
    total_deduction: Decimal
    net_value: Decimal
    loan_percentage: Decimal
    loan_amount: Decimal
    outstanding_principal: Decimal
    handling_fee: Decimal
    payout_amount: Decimal
    rates: RateSchedule
    extended_after_months: int
    pledge_date: date
    due_date: date
    grace_end_date: date
    gold_prices: GoldPriceSnapshot
    renewal_count: int
    interest_paid_months: int
    items: tuple[PledgeItemInfo, ...]
    cancellation_reason: str | None = None

    @property
    def item_ids(self) -> tuple[UUID, ...]:
        return tuple(item.id for item in self.items)

    @classmethod
    def from_model(cls, model: Pledge) -> PledgeInfo:
        return cls(
            id=model.id,
            branch_id=model.branch_id,
            customer_id=model.customer_id,
            owner_id=model.owner_id,
            pledge_no=model.pledge_no,
            receipt_no=model.receipt_no,
            status=PledgeStatus(model.status),
            total_gross_weight=model.total_gross_weight,
            total_weight=model.total_weight,
            gross_value=model.gross_value,
            total_deduction=model.total_deduction,
            net_value=model.net_value,
            loan_percentage=model.loan_percentage,
            loan_amount=model.loan_amount,
            outstanding_principal=model.outstanding_principal,
            handling_fee=model.handling_fee,
            payout_amount=model.payout_amount,
            rates=model.rate_schedule,
            extended_after_months=model.extended_after_months,
            pledge_date=model.pledge_date,
            due_date=model.due_date,
            grace_end_date=model.grace_end_date,
            gold_prices=model.price_snapshot,
            renewal_count=model.renewal_count,
            interest_paid_months=model.interest_paid_months,
            items=tuple(PledgeItemInfo.from_model(i) for i in model.items),
            cancellation_reason=model.cancellation_reason,
        )


@dataclass(frozen=True)
class BreakdownLine:
    month_number: int
    rate_type: RateType
    interest_rate: Decimal
    interest_amount: Decimal
    cumulative_amount: Decimal

    @classmethod
    def from_model(cls, model: RenewalInterestBreakdown) -> BreakdownLine:
        return cls(
            month_number=model.month_number,
            rate_type=RateType(model.rate_type),
            interest_rate=model.interest_rate,
            interest_amount=model.interest_amount,
            cumulative_amount=model.cumulative_amount,
        )


@dataclass(frozen=True)
class RenewalInfo:
    id: UUID
    pledge_id: UUID
    renewal_no: str
    renewal_date: date
    renewal_count: int
    renewal_months: int
    previous_due_date: date
    new_due_date: date
    new_grace_end_date: date
    interest_months: int
    interest_rate: Decimal
    interest_amount: Decimal
    handling_fee: Decimal
    total_payable: Decimal
    payment: PaymentSplit
    breakdown: tuple[BreakdownLine, ...]

    @classmethod
    def from_model(cls, model: Renewal) -> RenewalInfo:
        return cls(
            id=model.id,
            pledge_id=model.pledge_id,
            renewal_no=model.renewal_no,
            renewal_date=model.renewal_date,
            renewal_count=model.renewal_count,
            renewal_months=model.renewal_months,
            previous_due_date=model.previous_due_date,
            new_due_date=model.new_due_date,
            new_grace_end_date=model.new_grace_end_date,
            interest_months=model.interest_months,
            interest_rate=model.interest_rate,
            interest_amount=model.interest_amount,
            handling_fee=model.handling_fee,
            total_payable=model.total_payable,
            payment=_payment(model),
            breakdown=tuple(BreakdownLine.from_model(b) for b in model.breakdown),
        )


@dataclass(frozen=True)
class RedemptionInfo:
    id: UUID
    pledge_id: UUID
    redemption_no: str
    redemption_date: date
    is_partial: bool
    redeemed_item_ids: tuple[UUID, ...]
    principal_amount: Decimal
    interest_months: int
    interest_rate: Decimal
    interest_amount: Decimal
    handling_fee: Decimal
    other_charges: Decimal
    total_payable: Decimal
    payment: PaymentSplit
    items_released: bool

    @classmethod
    def from_model(cls, model: Redemption) -> RedemptionInfo:
        return cls(
            id=model.id,
            pledge_id=model.pledge_id,
            redemption_no=model.redemption_no,
            redemption_date=model.redemption_date,
            is_partial=model.is_partial,
            redeemed_item_ids=tuple(UUID(str(i)) for i in model.redeemed_item_ids),
            principal_amount=model.principal_amount,
            interest_months=model.interest_months,
            interest_rate=model.interest_rate,
            interest_amount=model.interest_amount,
            handling_fee=model.handling_fee,
            other_charges=model.other_charges,
            total_payable=model.total_payable,
            payment=_payment(model),
            items_released=model.items_released,
        )


@dataclass(frozen=True)
class SlotInfo:
    id: UUID
    box_id: UUID
    vault_id: UUID
    slot_number: int
    box_number: int
    vault_code: str
    is_occupied: bool
    current_item_id: UUID | None

    @property
    def label(self) -> str:
        """Shelf label, e.g. ``V1-B03-S12``."""
        return f"{self.vault_code}-B{self.box_number:02d}-S{self.slot_number:02d}"

    @classmethod
    def from_model(cls, model: Slot) -> SlotInfo:
        return cls(
            id=model.id,
            box_id=model.box_id,
            vault_id=model.box.vault_id,
            slot_number=model.slot_number,
            box_number=model.box.box_number,
            vault_code=model.box.vault.code,
            is_occupied=model.is_occupied,
            current_item_id=model.current_item_id,
        )


@dataclass(frozen=True)
class LocationEntry:
    pledge_item_id: UUID
    action: str
    from_slot_id: UUID | None
    to_slot_id: UUID | None
    reason: str | None
    performed_by_id: UUID
    performed_at: datetime
    sequence: int

    @classmethod
    def from_model(cls, model: ItemLocationHistory) -> LocationEntry:
        return cls(
            pledge_item_id=model.pledge_item_id,
            action=model.action,
            from_slot_id=model.from_slot_id,
            to_slot_id=model.to_slot_id,
            reason=model.reason,
            performed_by_id=model.performed_by_id,
            performed_at=model.performed_at,
            sequence=model.sequence,
        )


@dataclass(frozen=True)
class DailyTotals:
    """Counts and amounts of one branch's business on one date."""

    branch_id: UUID
    report_date: date
    pledges_count: int = 0
    pledges_loan_total: Decimal = ZERO
    pledges_payout_total: Decimal = ZERO
    renewals_count: int = 0
    renewals_total: Decimal = ZERO
    renewals_cash: Decimal = ZERO
    renewals_transfer: Decimal = ZERO
    redemptions_count: int = 0
    redemptions_total: Decimal = ZERO
    redemptions_cash: Decimal = ZERO
    redemptions_transfer: Decimal = ZERO
    items_in: int = 0
    items_out: int = 0

    @property
    def cash_in(self) -> Decimal:
        return self.renewals_cash + self.redemptions_cash

    def expected_cash(self, opening_balance: Decimal) -> Decimal:
        """Drawer balance implied by the day's cash movements."""
        return opening_balance - self.pledges_payout_total + self.cash_in

    @classmethod
    def from_model(cls, model: DayEndReport) -> DailyTotals:
        return cls(
            branch_id=model.branch_id,
            report_date=model.report_date,
            pledges_count=model.pledges_count,
            pledges_loan_total=model.pledges_loan_total,
            pledges_payout_total=model.pledges_payout_total,
            renewals_count=model.renewals_count,
            renewals_total=model.renewals_total,
            renewals_cash=model.renewals_cash,
            renewals_transfer=model.renewals_transfer,
            redemptions_count=model.redemptions_count,
            redemptions_total=model.redemptions_total,
            redemptions_cash=model.redemptions_cash,
            redemptions_transfer=model.redemptions_transfer,
            items_in=model.items_in,
            items_out=model.items_out,
        )


@dataclass(frozen=True)
class DayEndInfo:
    id: UUID
    branch_id: UUID
    report_date: date
    status: str
    opening_balance: Decimal
    closing_balance: Decimal | None
    expected_cash: Decimal | None
    variance: Decimal | None
    totals: DailyTotals
    notes: str | None
    closed_at: datetime | None
    closed_by_id: UUID | None

    @property
    def is_closed(self) -> bool:
        return self.status == "closed"

    @classmethod
    def from_model(cls, model: DayEndReport) -> DayEndInfo:
        return cls(
            id=model.id,
            branch_id=model.branch_id,
            report_date=model.report_date,
            status=model.status,
            opening_balance=model.opening_balance,
            closing_balance=model.closing_balance,
            expected_cash=model.expected_cash,
            variance=model.variance,
            totals=DailyTotals.from_model(model),
            notes=model.notes,
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
        )
