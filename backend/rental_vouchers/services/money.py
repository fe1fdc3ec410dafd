from __future__ import annotations

from typing import Any

from rental_vouchers.core.settings import settings


MONEY_FIELDS: frozenset[str] = frozenset(
    {
        "discount_amount",
        "final_amount",
        "savings",
        "total_savings",
        "eligible_amount",
        "effective_hourly_rate",
        "total_discount_given",
    }
)


def safe_round_money(v: float | None) -> float:
    try:
        return round(float(v or 0), 2)
    except Exception:
        return 0.0


def format_amount(v: float | None) -> str:
    value = float(v or 0)
    if value.is_integer():
        return f"{settings.currency_label}{int(value)}"
    return f"{settings.currency_label}{value:.2f}"


def round_money_fields(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in payload.items():
        if key in MONEY_FIELDS and isinstance(value, (int, float)) and not isinstance(value, bool):
            out[key] = safe_round_money(value)
        else:
            out[key] = value
    return out
