# Overview: Service-layer operations for settings; encapsulates business logic and database work.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Setting
from ..errors import ValidationError
from ..money import money_str
from ..validation import MAX_PRICE, parse_int, parse_money
from .concurrency import run_with_retry
from .pricing_service import Rates
"""
Settings Invariants

- Keys: hourly_rate, half_hour_rate, table_count. Stored as text.
- Reads fall back to the DEFAULT_* app config values for keys never saved.
- Rates must be > 0; table_count must be within 1..MAX_TABLE_COUNT.
"""

KEY_HOURLY_RATE = "hourly_rate"
KEY_HALF_HOUR_RATE = "half_hour_rate"
KEY_TABLE_COUNT = "table_count"


def _raw_settings() -> dict[str, str]:
    return {s.key: s.value for s in db.session.query(Setting).all()}


def get_settings() -> dict:
    """Effective settings with config defaults applied."""
    raw = _raw_settings()
    cfg = current_app.config
    return {
        KEY_HOURLY_RATE: Decimal(raw.get(KEY_HOURLY_RATE, str(cfg["DEFAULT_HOURLY_RATE"]))),
        KEY_HALF_HOUR_RATE: Decimal(raw.get(KEY_HALF_HOUR_RATE, str(cfg["DEFAULT_HALF_HOUR_RATE"]))),
        KEY_TABLE_COUNT: int(raw.get(KEY_TABLE_COUNT, cfg["DEFAULT_TABLE_COUNT"])),
    }


def settings_to_dict(settings: dict) -> dict:
    return {
        KEY_HOURLY_RATE: money_str(settings[KEY_HOURLY_RATE]),
        KEY_HALF_HOUR_RATE: money_str(settings[KEY_HALF_HOUR_RATE]),
        KEY_TABLE_COUNT: settings[KEY_TABLE_COUNT],
        "currency_symbol": current_app.config["CURRENCY_SYMBOL"],
    }


def get_rates() -> Rates:
    """Current billing rates for the pricing engine."""
    settings = get_settings()
    return Rates(
        hourly_rate=settings[KEY_HOURLY_RATE],
        half_hour_rate=settings[KEY_HALF_HOUR_RATE],
        currency_symbol=current_app.config["CURRENCY_SYMBOL"],
    )


def _validated_rate(value, field: str) -> Decimal:
    rate = parse_money(value, field)
    if rate <= 0:
        raise ValidationError(f"{field} must be > 0")
    if rate > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")
    return rate


def validate_table_count(value) -> int:
    max_count = current_app.config["MAX_TABLE_COUNT"]
    count = parse_int(value, "table_count")
    if count < 1 or count > max_count:
        raise ValidationError(
            f"Table count must be between 1 and {max_count}",
            details={"min": 1, "max": max_count, "requested": count},
        )
    return count


def save_settings(
    *,
    hourly_rate=None,
    half_hour_rate=None,
    table_count=None,
) -> dict:
    """
    Persist any provided settings (upsert by key) and return effective settings.

    When table_count is provided the tables are re-provisioned to match, in the
    same commit as the setting itself.
    """
    updates: dict[str, str] = {}
    if hourly_rate is not None:
        updates[KEY_HOURLY_RATE] = str(_validated_rate(hourly_rate, KEY_HOURLY_RATE))
    if half_hour_rate is not None:
        updates[KEY_HALF_HOUR_RATE] = str(_validated_rate(half_hour_rate, KEY_HALF_HOUR_RATE))
    count = validate_table_count(table_count) if table_count is not None else None
    if count is not None:
        updates[KEY_TABLE_COUNT] = str(count)

    if not updates:
        raise ValidationError("No settings provided")

    def _op():
        for key, value in updates.items():
            row = db.session.get(Setting, key)
            if row is None:
                db.session.add(Setting(key=key, value=value))
            else:
                row.value = value

        if count is not None:
            from .table_service import provision_tables
            provision_tables(count)

        db.session.commit()
        return get_settings()

    result = run_with_retry(_op)
    current_app.logger.info("Settings saved: %s", ", ".join(sorted(updates)))

    if count is not None:
        from .table_service import publish_tables_updated
        publish_tables_updated()
    return result
