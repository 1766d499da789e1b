"""
Pricing engine.

Pure functions only: the same inputs always produce the same price, so a
completed rental's charge can be recomputed from its stored inputs.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from lockrent.core.entities.locker import SizeClass
from lockrent.core.entities.rental import DurationClass, PlanTier

CENT = Decimal("0.01")


def _default_table() -> dict[PlanTier, dict[DurationClass, Decimal]]:
    return {
        PlanTier.STANDARD: {
            DurationClass.HOURLY: Decimal("2.99"),
            DurationClass.DAILY: Decimal("15.00"),
            DurationClass.WEEKLY: Decimal("50.00"),
            DurationClass.MONTHLY: Decimal("150.00"),
        },
        PlanTier.PREMIUM: {
            DurationClass.HOURLY: Decimal("4.99"),
            DurationClass.DAILY: Decimal("20.00"),
            DurationClass.WEEKLY: Decimal("65.00"),
            DurationClass.MONTHLY: Decimal("180.00"),
        },
    }


@dataclass(frozen=True, slots=True)
class RateTable:
    """Rates keyed by (plan tier, duration class). The hourly entry is the per-hour rate."""
    rates: dict[PlanTier, dict[DurationClass, Decimal]] = field(default_factory=_default_table)

    def rate(self, plan_tier: PlanTier, duration_class: DurationClass) -> Decimal:
        return self.rates[plan_tier][duration_class]

    def hourly_rate(self, plan_tier: PlanTier) -> Decimal:
        return self.rate(plan_tier, DurationClass.HOURLY)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, Any]]) -> RateTable:
        """
        Build a table from a plain mapping such as the `pricing` block of the
        provisioning file: {"Standard": {"Hourly": "2.99", ...}, ...}.
        Missing entries fall back to the defaults.
        """
        table = _default_table()
        for tier_name, durations in raw.items():
            tier = PlanTier(tier_name)
            for duration_name, amount in durations.items():
                table[tier][DurationClass(duration_name)] = to_money(amount)
        return cls(rates=table)


DEFAULT_RATES = RateTable()


def to_money(amount: Any) -> Decimal:
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    return int(to_money(amount) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def billable_hours(hours: float) -> int:
    """Every started hour is billed in full, with a minimum of one."""
    if math.isnan(hours) or hours < 0:
        raise ValueError(f"hours must be a non-negative number, got {hours!r}")
    return max(1, math.ceil(hours))


def elapsed_hours(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds() / 3600.0)


def price(
    size_class: SizeClass,
    plan_tier: PlanTier,
    duration_class: DurationClass,
    hours: float,
    rates: RateTable = DEFAULT_RATES,
) -> Decimal:
    """
    Hourly plans are billed per started hour at the tier's hourly rate.
    Daily/Weekly/Monthly plans are a flat bucket: `hours` does not change the price.

    `size_class` is part of the signature so a rate table keyed on size can be
    dropped in without changing callers; the shipped table prices by tier only.
    """
    if duration_class is DurationClass.HOURLY:
        return to_money(rates.hourly_rate(plan_tier) * billable_hours(hours))
    return to_money(rates.rate(plan_tier, duration_class))
