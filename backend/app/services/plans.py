"""Fixed plan catalog (months -> price in VND)."""
from __future__ import annotations

from dataclasses import dataclass

from app.core.errors import InvalidPlan

BASE_MONTHLY_PRICE = 199_000


@dataclass(frozen=True)
class Plan:
    duration: int
    price: int
    discount: int
    label: str
    badge: str | None = None

    @property
    def original_price(self) -> int:
        return BASE_MONTHLY_PRICE * self.duration

    @property
    def discount_percent(self) -> int:
        if not self.discount:
            return 0
        return round(self.discount / self.original_price * 100)

    @property
    def price_per_month(self) -> int:
        return round(self.price / self.duration)


PLAN_CATALOG: dict[int, Plan] = {
    1: Plan(duration=1, price=199_000, discount=0, label="1 month"),
    3: Plan(duration=3, price=499_000, discount=98_000, label="3 months", badge="Popular"),
    6: Plan(duration=6, price=899_000, discount=295_000, label="6 months", badge="Best value"),
}


def get_plan(plan_duration) -> Plan:
    """Resolve a requested duration against the catalog or raise InvalidPlan."""
    try:
        duration = int(plan_duration)
    except (TypeError, ValueError):
        raise InvalidPlan("Invalid plan", plan_duration=plan_duration) from None

    plan = PLAN_CATALOG.get(duration)
    if plan is None:
        raise InvalidPlan("Invalid plan", plan_duration=duration)
    return plan
