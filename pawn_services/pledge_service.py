"""
pawn_services.pledge_service -- Pledge lifecycle orchestration.

Responsibility:
    Creates pledges and drives every later transition: renewal, full and
    partial redemption, overdue marking, forfeiture, auction sale and
    cancellation.  Each operation composes the pure engines (valuation,
    interest) with the kernel services (sequences, storage, day-end) inside
    the caller's single transaction.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Receives a PawnPolicy explicitly; does not import pawn_config.

Invariants enforced:
    - Status changes only through ``resolve_transition``; the stored status
      of a redeemed, auctioned or cancelled pledge never changes again.
    - Item statuses agree with the pledge status (``check_item_consistency``)
      before every transition is flushed.
    - A pledge becomes ``redeemed`` iff every item is redeemed, auctioned or
      cancelled.
    - A renewal bills only pledge months after ``interest_paid_months``;
      a redemption does not bill months a renewal already collected.
    - Cancellation is refused once a renewal or redemption exists.
    - No mutation lands on a closed business day (``assert_day_open``).
    - Money fields come from the engines, already rounded half-up.

Failure modes:
    - ValidationError family: bad weights, unknown purity, loan terms out of
      range, payment short of the amount payable.
    - IllegalTransitionError: the state machine forbids the action.
    - SlotOccupiedError / SequenceConflictError: from kernel services.
    - DayEndClosedError: the business date is closed.
    - PledgeNotFoundError / PledgeItemNotFoundError.

Audit relevance:
    Every successful transition publishes a LifecycleEvent carrying the
    old and new values; collaborators receive it after commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pawn_engines.interest import (
    InterestPolicy,
    PledgeTerms,
    RedemptionQuote,
    RenewalQuote,
    add_months,
)
from pawn_engines.valuation import ItemInput, ValuationCalculator
from pawn_kernel.domain.clock import Clock, SystemClock
from pawn_kernel.domain.dtos import PledgeInfo, RedemptionInfo, RenewalInfo
from pawn_kernel.domain.lifecycle import (
    ItemStatus,
    PledgeAction,
    PledgeStatus,
    assert_item_transition,
    check_item_consistency,
    resolve_transition,
)
from pawn_kernel.domain.policy import PawnPolicy
from pawn_kernel.domain.values import (
    ZERO,
    GoldPriceSnapshot,
    NoDeduction,
    PaymentSplit,
    StoneDeduction,
    round_money,
    to_decimal,
)
from pawn_kernel.exceptions import (
    IllegalTransitionError,
    InsufficientPaymentError,
    InvalidLoanTermsError,
    PledgeItemNotFoundError,
    PledgeNotFoundError,
    ValidationError,
)
from pawn_kernel.logging_config import LogContext, get_logger
from pawn_kernel.models.auction import AuctionItem, AuctionStatus
from pawn_kernel.models.pledge import Pledge, PledgeItem
from pawn_kernel.models.redemption import Redemption
from pawn_kernel.models.renewal import Renewal, RenewalInterestBreakdown
from pawn_kernel.selectors.gold_price_selector import GoldPriceSelector
from pawn_kernel.selectors.rate_selector import RateSelector
from pawn_kernel.services.day_end_service import DayEndService
from pawn_kernel.services.event_bus import EventBus, LifecycleEvent
from pawn_kernel.services.sequence_service import DocumentKind, SequenceService
from pawn_kernel.services.storage_service import StorageService

logger = get_logger("services.pledge")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PledgeItemRequest:
    category: str
    purity_code: str
    gross_weight: Decimal
    deduction: StoneDeduction = field(default_factory=NoDeduction)
    description: str | None = None
    slot_id: UUID | None = None


@dataclass(frozen=True)
class CreatePledgeRequest:
    """
    Everything needed to open a pledge.

    ``gold_prices`` defaults to the latest recorded GoldPrice for the
    branch; ``term_months`` defaults to the policy term.
    """

    branch_id: UUID
    customer_id: UUID
    actor_id: UUID
    items: tuple[PledgeItemRequest, ...]
    loan_percentage: Decimal
    pledge_date: date
    gold_prices: GoldPriceSnapshot | None = None
    owner_id: UUID | None = None
    term_months: int | None = None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PledgeService:
    """
    Lifecycle transitions for pledges.

    Contract:
        Every public mutating method either completes all of its writes
        (pledge, items, slots, documents, ledger rows) or raises having
        written nothing visible to the caller's commit.  Flush only.

    Non-goals:
        - Does NOT commit.
        - Does NOT persist the audit log; it publishes events.
    """

    MODULE = "pledge"

    def __init__(
        self,
        session: Session,
        policy: PawnPolicy,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
    ):
        self.session = session
        self.policy = policy
        self._clock = clock or SystemClock()
        self._events = event_bus or EventBus()
        self._valuation = ValuationCalculator()
        self._interest = InterestPolicy()
        self.sequences = SequenceService(session, policy.numbering)
        self.storage = StorageService(session, self._clock, policy.storage, self._events)
        self.day_end = DayEndService(session, self._clock, self._events)

    # =========================================================================
    # Create
    # =========================================================================

    def create_pledge(self, request: CreatePledgeRequest) -> PledgeInfo:
        """
        Value the items, draw numbers, persist the pledge and place items.

        Raises:
            InvalidWeightError / UnknownPurityError / InvalidLoanTermsError
            SlotOccupiedError: If a requested slot is taken.
            DayEndClosedError: If the pledge date is closed.
        """
        with LogContext.bind(actor_id=str(request.actor_id), branch_id=str(request.branch_id)):
            return self._create_pledge(request)

    def _create_pledge(self, request: CreatePledgeRequest) -> PledgeInfo:
        pledge_policy = self.policy.pledge
        loan_percentage = to_decimal(request.loan_percentage)
        if loan_percentage not in pledge_policy.loan_percentages:
            raise InvalidLoanTermsError(
                f"loan percentage {loan_percentage} is not one of "
                f"{', '.join(str(p) for p in pledge_policy.loan_percentages)}"
            )
        term_months = request.term_months or pledge_policy.term_months
        if term_months < 1:
            raise InvalidLoanTermsError("term must be at least one month")

        self.day_end.assert_day_open(request.branch_id, request.pledge_date)

        snapshot = request.gold_prices or GoldPriceSelector(self.session).latest_snapshot(
            request.branch_id, request.pledge_date
        )
        valuation = self._valuation.value_items(
            [
                ItemInput(
                    category=i.category,
                    purity_code=i.purity_code,
                    gross_weight=i.gross_weight,
                    deduction=i.deduction,
                    description=i.description,
                )
                for i in request.items
            ],
            snapshot,
        )
        loan_amount = self._valuation.loan_amount(valuation.net_value, loan_percentage)
        if loan_amount <= ZERO:
            raise InvalidLoanTermsError("items have no lendable value")
        handling_fee = self._interest.handling_fee(loan_amount, pledge_policy.handling_fee)
        payout = self._valuation.payout_amount(loan_amount, handling_fee)

        rates = RateSelector(self.session).rate_schedule(
            request.branch_id, request.pledge_date, pledge_policy.rates
        )
        due_date = add_months(request.pledge_date, term_months)
        grace_end_date = due_date + timedelta(days=pledge_policy.grace_days)

        year = request.pledge_date.year
        pledge_no = self.sequences.next(request.branch_id, DocumentKind.PLEDGE, year)
        receipt_no = self.sequences.next(request.branch_id, DocumentKind.RECEIPT, year)

        items = [
            PledgeItem(
                item_no=f"{pledge_no}-{n:02d}",
                category=v.category,
                purity_code=v.purity_code,
                description=v.description,
                gross_weight=v.gross_weight,
                deduction_type=None if isinstance(v.deduction, NoDeduction) else v.deduction.kind,
                deduction_value=v.deduction.value,
                deducted_weight=v.deducted_weight,
                net_weight=v.net_weight,
                price_per_gram=v.price_per_gram,
                gross_value=v.gross_value,
                deduction_amount=v.deduction_amount,
                net_value=v.net_value,
                status=ItemStatus.STORED.value,
                created_by_id=request.actor_id,
            )
            for n, v in enumerate(valuation.items, start=1)
        ]

        pledge = Pledge(
            branch_id=request.branch_id,
            customer_id=request.customer_id,
            owner_id=request.owner_id,
            pledge_no=pledge_no,
            receipt_no=receipt_no,
            total_gross_weight=valuation.total_gross_weight,
            total_weight=valuation.total_weight,
            gross_value=valuation.gross_value,
            total_deduction=valuation.total_deduction,
            net_value=valuation.net_value,
            loan_percentage=loan_percentage,
            loan_amount=loan_amount,
            outstanding_principal=loan_amount,
            handling_fee=handling_fee,
            payout_amount=payout,
            interest_rate=rates.standard,
            interest_rate_extended=rates.extended,
            interest_rate_overdue=rates.overdue,
            extended_after_months=pledge_policy.extended_after_months,
            pledge_date=request.pledge_date,
            due_date=due_date,
            grace_end_date=grace_end_date,
            gold_prices=snapshot.to_dict(),
            gold_price_source=snapshot.source,
            gold_price_date=snapshot.price_date,
            status=PledgeStatus.ACTIVE.value,
            renewal_count=0,
            interest_paid_months=0,
            created_by_id=request.actor_id,
            items=items,
        )
        self.session.add(pledge)
        self.session.flush()

        for item, item_request in zip(items, request.items):
            if item_request.slot_id is not None:
                self.storage.assign(item.id, item_request.slot_id, request.actor_id)

        check_item_consistency(str(pledge.id), pledge.status, [i.status for i in items])
        self.session.flush()

        logger.info(
            "pledge_created",
            extra={
                "pledge_id": str(pledge.id),
                "pledge_no": pledge_no,
                "item_count": len(items),
                "net_value": valuation.net_value,
                "loan_amount": loan_amount,
                "payout_amount": payout,
            },
        )
        self._publish(
            "pledge_created",
            pledge,
            request.actor_id,
            old_values={},
            new_values={
                "status": pledge.status,
                "pledge_no": pledge_no,
                "loan_amount": str(loan_amount),
            },
        )
        return PledgeInfo.from_model(pledge)

    # =========================================================================
    # Renew
    # =========================================================================

    def quote_renewal(self, pledge_id: UUID, renewal_months: int, as_of: date) -> RenewalQuote:
        """Price a renewal without recording it."""
        pledge = self._get_pledge(pledge_id)
        return self._renewal_quote(pledge, renewal_months, as_of)

    def renew(
        self,
        pledge_id: UUID,
        renewal_months: int,
        payment: PaymentSplit,
        actor_id: UUID,
        as_of: date,
    ) -> RenewalInfo:
        """
        Collect interest and extend the due date.

        Raises:
            IllegalTransitionError: If the pledge is not active or overdue.
            InvalidLoanTermsError: If renewal_months is out of range.
            InsufficientPaymentError: If payment is short.
        """
        pledge = self._locked_pledge(pledge_id)
        with LogContext.bind(actor_id=str(actor_id), pledge_no=pledge.pledge_no):
            transition = resolve_transition(str(pledge.id), pledge.status, PledgeAction.RENEW)
            self.day_end.assert_day_open(pledge.branch_id, as_of)

            quote = self._renewal_quote(pledge, renewal_months, as_of)
            self._require_payment(quote.total_payable, payment)

            renewal_no = self.sequences.next(pledge.branch_id, DocumentKind.RENEWAL, as_of.year)
            old_values = {
                "status": pledge.status,
                "due_date": pledge.due_date.isoformat(),
                "renewal_count": pledge.renewal_count,
                "interest_paid_months": pledge.interest_paid_months,
            }

            renewal = Renewal(
                pledge_id=pledge.id,
                branch_id=pledge.branch_id,
                renewal_no=renewal_no,
                renewal_date=as_of,
                renewal_count=pledge.renewal_count + 1,
                renewal_months=renewal_months,
                previous_due_date=quote.previous_due_date,
                new_due_date=quote.new_due_date,
                new_grace_end_date=quote.new_grace_end_date,
                interest_months=quote.months_charged,
                interest_rate=quote.interest_rate,
                interest_amount=quote.interest_amount,
                handling_fee=quote.handling_fee,
                total_payable=quote.total_payable,
                payment_method=payment.method,
                cash_amount=payment.cash,
                transfer_amount=payment.transfer,
                reference_no=payment.reference_no,
                created_by_id=actor_id,
                breakdown=[
                    RenewalInterestBreakdown(
                        month_number=row.month_number,
                        rate_type=row.rate_type.value,
                        interest_rate=row.interest_rate,
                        interest_amount=row.interest_amount,
                        cumulative_amount=row.cumulative_amount,
                    )
                    for row in quote.breakdown
                ],
            )
            self.session.add(renewal)

            pledge.renewal_count += 1
            pledge.interest_paid_months = quote.breakdown[-1].month_number
            pledge.due_date = quote.new_due_date
            pledge.grace_end_date = quote.new_grace_end_date
            pledge.status = transition.to_state.value
            pledge.updated_by_id = actor_id

            self._check_consistency(pledge)
            self.session.flush()

            logger.info(
                "pledge_renewed",
                extra={
                    "pledge_id": str(pledge.id),
                    "renewal_no": renewal_no,
                    "months_charged": quote.months_charged,
                    "interest_amount": quote.interest_amount,
                    "total_payable": quote.total_payable,
                    "new_due_date": quote.new_due_date,
                },
            )
            self._publish(
                "pledge_renewed",
                pledge,
                actor_id,
                old_values=old_values,
                new_values={
                    "status": pledge.status,
                    "due_date": pledge.due_date.isoformat(),
                    "renewal_count": pledge.renewal_count,
                    "interest_paid_months": pledge.interest_paid_months,
                    "renewal_no": renewal_no,
                },
            )
            return RenewalInfo.from_model(renewal)

    # =========================================================================
    # Redeem
    # =========================================================================

    def quote_redemption(
        self,
        pledge_id: UUID,
        as_of: date,
        item_ids: list[UUID] | tuple[UUID, ...] | None = None,
        other_charges: Decimal = ZERO,
    ) -> RedemptionQuote:
        """Price a full or partial redemption without recording it."""
        pledge = self._get_pledge(pledge_id)
        selected, _ = self._select_items(pledge, item_ids)
        principal = self._redeemed_principal(pledge, selected)
        return self._interest.redemption_quote(
            self._terms(pledge),
            as_of,
            self.policy.pledge.handling_fee,
            principal=principal,
            other_charges=other_charges,
        )

    def redeem(
        self,
        pledge_id: UUID,
        payment: PaymentSplit,
        actor_id: UUID,
        as_of: date,
        item_ids: list[UUID] | tuple[UUID, ...] | None = None,
        other_charges: Decimal = ZERO,
    ) -> RedemptionInfo:
        """
        Settle principal and interest and hand items back.

        ``item_ids`` None (or every open item) is a full redemption.
        A partial redemption settles the outstanding principal pro rata by
        the net value of the items taken; the last one settles whatever
        principal remains.

        Raises:
            IllegalTransitionError: If the pledge is not active or overdue.
            PledgeItemNotFoundError: If an id is not an open item of the pledge.
            InsufficientPaymentError: If payment is short.
        """
        pledge = self._locked_pledge(pledge_id)
        with LogContext.bind(actor_id=str(actor_id), pledge_no=pledge.pledge_no):
            selected, is_full = self._select_items(pledge, item_ids)
            action = PledgeAction.REDEEM if is_full else PledgeAction.REDEEM_PARTIAL
            transition = resolve_transition(str(pledge.id), pledge.status, action)
            self.day_end.assert_day_open(pledge.branch_id, as_of)

            principal = self._redeemed_principal(pledge, selected)
            quote = self._interest.redemption_quote(
                self._terms(pledge),
                as_of,
                self.policy.pledge.handling_fee,
                principal=principal,
                other_charges=other_charges,
            )
            self._require_payment(quote.total_payable, payment)

            redemption_no = self.sequences.next(
                pledge.branch_id, DocumentKind.REDEMPTION, as_of.year
            )
            old_values = {
                "status": pledge.status,
                "outstanding_principal": str(pledge.outstanding_principal),
            }
            now = self._clock.now_utc()

            redemption = Redemption(
                pledge_id=pledge.id,
                branch_id=pledge.branch_id,
                redemption_no=redemption_no,
                redemption_date=as_of,
                is_partial=not is_full,
                redeemed_item_ids=[str(i.id) for i in selected],
                principal_amount=quote.principal,
                interest_months=quote.interest_months,
                interest_rate=quote.interest_rate,
                interest_amount=quote.interest_amount,
                handling_fee=quote.handling_fee,
                other_charges=quote.other_charges,
                total_payable=quote.total_payable,
                payment_method=payment.method,
                cash_amount=payment.cash,
                transfer_amount=payment.transfer,
                reference_no=payment.reference_no,
                items_released=True,
                released_at=now,
                released_by_id=actor_id,
                created_by_id=actor_id,
            )
            self.session.add(redemption)
            self.session.flush()

            for item in selected:
                self.storage.release(item.id, actor_id, reason=f"redeemed {redemption_no}")
                self._close_item(item, ItemStatus.REDEEMED, actor_id, now)
                item.redemption_id = redemption.id

            pledge.outstanding_principal = (
                ZERO if is_full else pledge.outstanding_principal - quote.principal
            )
            pledge.status = transition.to_state.value
            pledge.updated_by_id = actor_id

            self._check_consistency(pledge)
            self.session.flush()

            logger.info(
                "pledge_redeemed" if is_full else "pledge_partially_redeemed",
                extra={
                    "pledge_id": str(pledge.id),
                    "redemption_no": redemption_no,
                    "item_count": len(selected),
                    "principal": quote.principal,
                    "interest_amount": quote.interest_amount,
                    "total_payable": quote.total_payable,
                },
            )
            self._publish(
                "pledge_redeemed" if is_full else "pledge_partially_redeemed",
                pledge,
                actor_id,
                old_values=old_values,
                new_values={
                    "status": pledge.status,
                    "outstanding_principal": str(pledge.outstanding_principal),
                    "redemption_no": redemption_no,
                    "redeemed_item_ids": [str(i.id) for i in selected],
                },
            )
            return RedemptionInfo.from_model(redemption)

    # =========================================================================
    # Overdue, forfeiture, auction
    # =========================================================================

    def mark_overdue(self, branch_id: UUID, as_of: date, actor_id: UUID) -> int:
        """
        Batch hook: store ``overdue`` on live pledges past their due date.

        Raises:
            DayEndClosedError: If ``as_of`` is closed for the branch.
        """
        self.day_end.assert_day_open(branch_id, as_of)
        pledges = self.session.execute(
            select(Pledge)
            .where(
                Pledge.branch_id == branch_id,
                Pledge.status.in_([PledgeStatus.ACTIVE.value, PledgeStatus.RENEWED.value]),
                Pledge.due_date < as_of,
            )
            .order_by(Pledge.due_date)
            .with_for_update()
        ).scalars().all()

        for pledge in pledges:
            transition = resolve_transition(str(pledge.id), pledge.status, PledgeAction.MARK_OVERDUE)
            old_status = pledge.status
            pledge.status = transition.to_state.value
            pledge.updated_by_id = actor_id
            self._publish(
                "pledge_marked_overdue",
                pledge,
                actor_id,
                old_values={"status": old_status},
                new_values={"status": pledge.status},
            )
        self.session.flush()

        logger.info(
            "pledges_marked_overdue",
            extra={"branch_id": str(branch_id), "as_of": as_of, "count": len(pledges)},
        )
        return len(pledges)

    def forfeit(self, pledge_id: UUID, actor_id: UUID, as_of: date) -> PledgeInfo:
        """
        Declare the collateral forfeited once the grace period has passed.

        Each open item gets a pending AuctionItem.

        Raises:
            IllegalTransitionError: If not live, or still within grace.
            DayEndClosedError: If ``as_of`` is closed for the branch.
        """
        pledge = self._locked_pledge(pledge_id)
        with LogContext.bind(actor_id=str(actor_id), pledge_no=pledge.pledge_no):
            transition = resolve_transition(str(pledge.id), pledge.status, PledgeAction.FORFEIT)
            self.day_end.assert_day_open(pledge.branch_id, as_of)
            if not self._interest.is_forfeitable(self._terms(pledge), as_of):
                raise IllegalTransitionError(
                    str(pledge.id),
                    pledge.status,
                    PledgeAction.FORFEIT.value,
                    reason=f"grace period runs until {pledge.grace_end_date.isoformat()}",
                )

            old_status = pledge.status
            pledge.status = transition.to_state.value
            pledge.forfeited_at = self._clock.now_utc()
            pledge.forfeited_by_id = actor_id
            pledge.updated_by_id = actor_id

            for item in pledge.open_items:
                self.session.add(
                    AuctionItem(
                        pledge_id=pledge.id,
                        pledge_item_id=item.id,
                        status=AuctionStatus.PENDING,
                        created_by_id=actor_id,
                    )
                )

            self._check_consistency(pledge)
            self.session.flush()

            logger.info(
                "pledge_forfeited",
                extra={"pledge_id": str(pledge.id), "grace_end_date": pledge.grace_end_date},
            )
            self._publish(
                "pledge_forfeited",
                pledge,
                actor_id,
                old_values={"status": old_status},
                new_values={"status": pledge.status},
            )
            return PledgeInfo.from_model(pledge)

    def record_auction_sale(
        self,
        pledge_item_id: UUID,
        sold_price: Decimal,
        actor_id: UUID,
        as_of: date,
        buyer_name: str | None = None,
    ) -> PledgeInfo:
        """
        Record the sale of one forfeited item.

        The pledge becomes ``auctioned`` when its last open item is sold.

        Raises:
            IllegalTransitionError: If the pledge is not forfeited or the
                item is already closed.
            DayEndClosedError: If ``as_of`` is closed for the branch.
        """
        price = round_money(to_decimal(sold_price))
        if price <= ZERO:
            raise ValidationError(f"sold price must be positive, got {price}")

        item = self.session.get(PledgeItem, pledge_item_id)
        if item is None:
            raise PledgeItemNotFoundError(str(pledge_item_id))
        pledge = self._locked_pledge(item.pledge_id)

        with LogContext.bind(actor_id=str(actor_id), pledge_no=pledge.pledge_no):
            assert_item_transition(str(item.id), item.status, ItemStatus.AUCTIONED)
            remaining = [i for i in pledge.open_items if i.id != item.id]
            action = PledgeAction.AUCTION_SALE if remaining else PledgeAction.AUCTION_FINAL_SALE
            transition = resolve_transition(str(pledge.id), pledge.status, action)
            self.day_end.assert_day_open(pledge.branch_id, as_of)

            now = self._clock.now_utc()
            auction = self.session.execute(
                select(AuctionItem).where(AuctionItem.pledge_item_id == item.id)
            ).scalar_one_or_none()
            if auction is None:
                auction = AuctionItem(
                    pledge_id=pledge.id,
                    pledge_item_id=item.id,
                    created_by_id=actor_id,
                )
                self.session.add(auction)
            auction.status = AuctionStatus.SOLD
            auction.sold_price = price
            auction.buyer_name = buyer_name
            auction.sold_at = now
            auction.updated_by_id = actor_id

            self.storage.release(item.id, actor_id, reason="auction sale")
            self._close_item(item, ItemStatus.AUCTIONED, actor_id, now)

            old_status = pledge.status
            pledge.status = transition.to_state.value
            pledge.updated_by_id = actor_id

            self._check_consistency(pledge)
            self.session.flush()

            logger.info(
                "auction_sale_recorded",
                extra={
                    "pledge_id": str(pledge.id),
                    "item_id": str(item.id),
                    "sold_price": price,
                    "remaining_items": len(remaining),
                },
            )
            self._publish(
                "auction_sale_recorded",
                pledge,
                actor_id,
                old_values={"status": old_status},
                new_values={
                    "status": pledge.status,
                    "item_id": str(item.id),
                    "sold_price": str(price),
                },
            )
            return PledgeInfo.from_model(pledge)

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel(self, pledge_id: UUID, reason: str, actor_id: UUID, as_of: date) -> PledgeInfo:
        """
        Void a pledge and free its slots.

        Raises:
            ValidationError: If no reason is given.
            IllegalTransitionError: If terminal, or if a renewal or
                redemption has been recorded, or if any item
                is already closed or sold at auction.  Every check runs
                before the first write.
        """
        if not reason or not reason.strip():
            raise ValidationError("a cancellation reason is required")

        pledge = self._locked_pledge(pledge_id)
        with LogContext.bind(actor_id=str(actor_id), pledge_no=pledge.pledge_no):
            transition = resolve_transition(str(pledge.id), pledge.status, PledgeAction.CANCEL)
            payments = self._payment_count(pledge.id)
            if payments:
                raise IllegalTransitionError(
                    str(pledge.id),
                    pledge.status,
                    PledgeAction.CANCEL.value,
                    reason=f"{payments} payment(s) recorded against pledge",
                )
            closed = sorted({i.status for i in pledge.items if i.status != ItemStatus.STORED.value})
            sold = self.session.execute(
                select(func.count(AuctionItem.id)).where(
                    AuctionItem.pledge_id == pledge.id,
                    AuctionItem.status == AuctionStatus.SOLD,
                )
            ).scalar_one()
            if closed or sold:
                raise IllegalTransitionError(
                    str(pledge.id),
                    pledge.status,
                    PledgeAction.CANCEL.value,
                    reason=(
                        f"items already closed ({', '.join(closed) or 'sold at auction'})"
                    ),
                )
            self.day_end.assert_day_open(pledge.branch_id, as_of)

            # nothing is written above this line
            now = self._clock.now_utc()
            self.storage.release_all(
                [i.id for i in pledge.items], actor_id, reason=f"cancelled: {reason}"
            )
            for item in pledge.items:
                self._close_item(item, ItemStatus.CANCELLED, actor_id, now)

            pending_auctions = self.session.execute(
                select(AuctionItem).where(
                    AuctionItem.pledge_id == pledge.id,
                    AuctionItem.status == AuctionStatus.PENDING,
                )
            ).scalars().all()
            for auction in pending_auctions:
                auction.status = AuctionStatus.UNSOLD
                auction.updated_by_id = actor_id

            old_status = pledge.status
            pledge.status = transition.to_state.value
            pledge.cancelled_at = now
            pledge.cancelled_by_id = actor_id
            pledge.cancellation_reason = reason
            pledge.updated_by_id = actor_id

            self._check_consistency(pledge)
            self.session.flush()

            logger.info(
                "pledge_cancelled",
                extra={"pledge_id": str(pledge.id), "reason": reason},
            )
            self._publish(
                "pledge_cancelled",
                pledge,
                actor_id,
                old_values={"status": old_status},
                new_values={"status": pledge.status, "reason": reason},
            )
            return PledgeInfo.from_model(pledge)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_pledge(self, pledge_id: UUID) -> PledgeInfo:
        return PledgeInfo.from_model(self._get_pledge(pledge_id))

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_pledge(self, pledge_id: UUID) -> Pledge:
        pledge = self.session.get(Pledge, pledge_id)
        if pledge is None:
            raise PledgeNotFoundError(str(pledge_id))
        return pledge

    def _locked_pledge(self, pledge_id: UUID) -> Pledge:
        pledge = self.session.execute(
            select(Pledge)
            .where(Pledge.id == pledge_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if pledge is None:
            raise PledgeNotFoundError(str(pledge_id))
        return pledge

    def _terms(self, pledge: Pledge) -> PledgeTerms:
        return PledgeTerms(
            principal=pledge.outstanding_principal,
            pledge_date=pledge.pledge_date,
            due_date=pledge.due_date,
            grace_end_date=pledge.grace_end_date,
            rates=pledge.rate_schedule,
            extended_after_months=pledge.extended_after_months,
            interest_paid_months=pledge.interest_paid_months,
        )

    def _renewal_quote(self, pledge: Pledge, renewal_months: int, as_of: date) -> RenewalQuote:
        pledge_policy = self.policy.pledge
        return self._interest.renewal_quote(
            self._terms(pledge),
            as_of,
            renewal_months,
            pledge_policy.handling_fee,
            grace_days=pledge_policy.grace_days,
            max_renewal_months=pledge_policy.max_renewal_months,
        )

    def _select_items(
        self,
        pledge: Pledge,
        item_ids: list[UUID] | tuple[UUID, ...] | None,
    ) -> tuple[list[PledgeItem], bool]:
        """The items to redeem and whether that empties the pledge."""
        open_items = pledge.open_items
        if item_ids is None:
            return open_items, True
        if not item_ids:
            raise ValidationError("select at least one item to redeem")

        by_id = {item.id: item for item in open_items}
        selected = []
        for item_id in dict.fromkeys(item_ids):
            if item_id not in by_id:
                raise PledgeItemNotFoundError(str(item_id))
            selected.append(by_id[item_id])
        return selected, len(selected) == len(open_items)

    def _redeemed_principal(self, pledge: Pledge, selected: list[PledgeItem]) -> Decimal:
        """Outstanding principal attributable to ``selected``."""
        open_items = pledge.open_items
        if len(selected) == len(open_items):
            return pledge.outstanding_principal
        open_value = sum((i.net_value for i in open_items), ZERO)
        if open_value > ZERO:
            share = sum((i.net_value for i in selected), ZERO) / open_value
        else:
            share = Decimal(len(selected)) / Decimal(len(open_items))
        return round_money(pledge.outstanding_principal * share)

    def _require_payment(self, required: Decimal, payment: PaymentSplit) -> None:
        if payment.total < required:
            raise InsufficientPaymentError(required, payment.total)

    def _close_item(self, item: PledgeItem, target: ItemStatus, actor_id: UUID, when) -> None:
        assert_item_transition(str(item.id), item.status, target)
        item.status = target.value
        item.released_at = when
        item.released_by_id = actor_id
        item.updated_by_id = actor_id

    def _check_consistency(self, pledge: Pledge) -> None:
        check_item_consistency(str(pledge.id), pledge.status, [i.status for i in pledge.items])

    def _payment_count(self, pledge_id: UUID) -> int:
        renewals = self.session.execute(
            select(func.count(Renewal.id)).where(Renewal.pledge_id == pledge_id)
        ).scalar_one()
        redemptions = self.session.execute(
            select(func.count(Redemption.id)).where(Redemption.pledge_id == pledge_id)
        ).scalar_one()
        return renewals + redemptions

    def _publish(
        self,
        action: str,
        pledge: Pledge,
        actor_id: UUID,
        old_values: dict,
        new_values: dict,
    ) -> None:
        self._events.publish(
            self.session,
            LifecycleEvent(
                action=action,
                module=self.MODULE,
                entity_type="Pledge",
                entity_id=str(pledge.id),
                old_values=old_values,
                new_values=new_values,
                actor_id=actor_id,
                branch_id=pledge.branch_id,
            ),
        )
