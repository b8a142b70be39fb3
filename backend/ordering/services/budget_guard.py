# Overview: Pure evaluation of a prospective order against monthly spend and order-count ceilings.

"""
Budget / Order-Limit Guard

The guard never rejects an order. A positive result routes submission into
approval_pending, where a human explicitly approves despite the limit
(order_service.approve_order). Each limit is evaluated only when its own
enabled flag is set; a disabled limit is skipped, not treated as zero.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LimitEvaluation:
    exceeds_budget: bool
    exceed_amount: int | float | None
    exceeds_order_count: bool

    @property
    def requires_override(self) -> bool:
        return self.exceeds_budget or self.exceeds_order_count

    def to_dict(self) -> dict:
        return {
            "exceeds_budget": self.exceeds_budget,
            "exceed_amount": self.exceed_amount,
            "exceeds_order_count": self.exceeds_order_count,
            "requires_override": self.requires_override,
        }


def evaluate(
    current_month_amount,
    monthly_expense_limit,
    order_total,
    current_month_orders: int,
    monthly_order_limit: int | None,
    budget_limit_enabled: bool,
    order_limit_enabled: bool,
) -> LimitEvaluation:
    """
    Evaluate one prospective order.

    Budget (when budget_limit_enabled):
        exceed_amount = order_total - (monthly_expense_limit - current_month_amount)
        exceeds_budget = exceed_amount > 0
    Order count (when order_limit_enabled):
        the order would be number current_month_orders + 1 this month;
        exceeds_order_count when that is above monthly_order_limit.

    >>> evaluate(400, 500, 150, 0, None, True, False).exceed_amount
    50
    """
    exceeds_budget = False
    exceed_amount = None
    if budget_limit_enabled:
        limit = monthly_expense_limit or 0
        exceed_amount = order_total - (limit - current_month_amount)
        exceeds_budget = exceed_amount > 0

    exceeds_order_count = False
    if order_limit_enabled:
        limit = monthly_order_limit or 0
        exceeds_order_count = current_month_orders + 1 > limit

    return LimitEvaluation(
        exceeds_budget=exceeds_budget,
        exceed_amount=exceed_amount,
        exceeds_order_count=exceeds_order_count,
    )


def evaluate_for_store(store, order_total_cents: int) -> LimitEvaluation:
    """Evaluate against a Store row; counters must already be rolled to the current period."""
    return evaluate(
        current_month_amount=store.current_month_amount_cents,
        monthly_expense_limit=store.monthly_expense_limit_cents,
        order_total=order_total_cents,
        current_month_orders=store.current_month_orders,
        monthly_order_limit=store.monthly_order_limit,
        budget_limit_enabled=bool(store.budget_limit_enabled),
        order_limit_enabled=bool(store.order_limit_enabled),
    )
