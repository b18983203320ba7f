# Overview: Pure billing functions for open-time, hour and countdown sessions.

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from billiard_pos.money import Number, display_amount, quantize_money, to_decimal
from billiard_pos.time_utils import elapsed_seconds
"""
Billing Invariants (authoritative)

- Every function here is deterministic: (seconds, rates) -> amount. No I/O.
- Results are Decimals rounded half-up to 2 places.

Open time (minutes = floor(elapsed / 60)):
- under 30 full minutes          -> half_hour_rate
- 30..60 minutes                 -> hourly_rate
- beyond 60 minutes              -> hourly_rate + each *completed* 30-minute block
                                    past minute 60, alternating half_hour_rate,
                                    (hourly_rate - half_hour_rate), half_hour_rate, ...

Hour mode: ceil(elapsed / 60) minutes billed linearly at hourly_rate / 60.

Countdown (minutes = floor(allocated / 60)), billed on the *allocated* grant:
- <= 30 minutes  -> half_hour_rate
- <= 60 minutes  -> hourly_rate
- beyond         -> hourly_rate + ceil((minutes - 60) / 30) * half_hour_rate
"""

HOUR_MODE_AUTO_STOP_SECONDS = 3600


@dataclass(frozen=True)
class Rates:
    hourly_rate: Decimal
    half_hour_rate: Decimal
    currency_symbol: str = "₱"

    @classmethod
    def of(cls, hourly_rate: Number, half_hour_rate: Number, currency_symbol: str = "₱") -> "Rates":
        return cls(to_decimal(hourly_rate), to_decimal(half_hour_rate), currency_symbol)


@dataclass(frozen=True)
class OpenTimeCost:
    total_cost: Decimal
    breakdown: str  # Display only; total_cost is authoritative

    def to_dict(self) -> dict:
        return {"total_cost": str(self.total_cost), "breakdown": self.breakdown}


def _open_time_breakdown(total_minutes: int, completed_blocks: int, rates: Rates) -> str:
    # Simplified display text; it does not itemise the alternating block amounts.
    hourly = display_amount(rates.hourly_rate, rates.currency_symbol)
    half = display_amount(rates.half_hour_rate, rates.currency_symbol)

    full_hours = total_minutes // 60
    if completed_blocks == 0:
        return f"{full_hours} hr {hourly}"
    if completed_blocks == 1:
        return f"{full_hours} hr {hourly} + 30min {half}"

    additional_hours = completed_blocks // 2
    extra_half_hour = completed_blocks % 2
    breakdown = f"{full_hours} hr {hourly}"
    if additional_hours > 0:
        breakdown += f" + {additional_hours} hr {hourly}"
    if extra_half_hour > 0:
        breakdown += f" + 30min {half}"
    return breakdown


def compute_open_time_cost(elapsed: int, rates: Rates) -> OpenTimeCost:
    """Tiered open-time cost for `elapsed` seconds."""
    total_minutes = max(0, int(elapsed)) // 60
    hourly = to_decimal(rates.hourly_rate)
    half = to_decimal(rates.half_hour_rate)

    # 30:00 through 30:59 already bills the first hour. The older billing rule
    # kept half-hour pricing up to 30 whole minutes (< 31); pending owner sign-off.
    if total_minutes < 30:
        return OpenTimeCost(
            quantize_money(half),
            f"0-30min {display_amount(half, rates.currency_symbol)}",
        )

    if total_minutes <= 60:
        return OpenTimeCost(
            quantize_money(hourly),
            f"First hour {display_amount(hourly, rates.currency_symbol)}",
        )

    completed_blocks = (total_minutes - 60) // 30
    total = hourly
    for i in range(completed_blocks):
        total += half if i % 2 == 0 else (hourly - half)

    return OpenTimeCost(
        quantize_money(total),
        _open_time_breakdown(total_minutes, completed_blocks, rates),
    )


def compute_hour_cost(elapsed: int, rates: Rates) -> Decimal:
    """Linear hour-mode cost: started minutes x hourly_rate / 60."""
    minutes = math.ceil(max(0, int(elapsed)) / 60)
    return quantize_money(Decimal(minutes) * to_decimal(rates.hourly_rate) / Decimal(60))


def compute_countdown_cost(allocated: int, rates: Rates) -> Decimal:
    """Countdown cost for the total allocated grant (initial duration + extensions)."""
    total_minutes = max(0, int(allocated)) // 60
    hourly = to_decimal(rates.hourly_rate)
    half = to_decimal(rates.half_hour_rate)

    if total_minutes <= 30:
        return quantize_money(half)
    if total_minutes <= 60:
        return quantize_money(hourly)

    blocks = math.ceil((total_minutes - 60) / 30)
    return quantize_money(hourly + blocks * half)


def session_elapsed_seconds(session, now: datetime) -> int:
    """Seconds from start to end_time, or to `now` while the session is running."""
    end = session.end_time or now
    return elapsed_seconds(session.start_time, end)


def session_duration_minutes(session, now: datetime) -> int:
    """Recorded minutes: ceil of the exact start-to-end span, sub-second part included."""
    end = session.end_time or now
    return math.ceil(max(0.0, (end - session.start_time).total_seconds()) / 60)


def compute_session_time_cost(session, rates: Rates, now: datetime) -> Decimal:
    """Mode-aware time cost for a TableSession evaluated at `now`."""
    if session.mode == "countdown":
        return compute_countdown_cost(session.total_allocated_seconds or 0, rates)

    elapsed = session_elapsed_seconds(session, now)
    if session.mode == "hour":
        return compute_hour_cost(elapsed, rates)
    return compute_open_time_cost(elapsed, rates).total_cost


def remaining_seconds(session, now: datetime) -> int | None:
    """Countdown time left, never negative. None for non-countdown sessions."""
    allocated = session.total_allocated_seconds
    if allocated is None:
        return None
    return max(0, allocated - session_elapsed_seconds(session, now))


def should_auto_stop(session, now: datetime) -> bool:
    """
    Monitoring condition layered over the state machine:
    hour sessions at 60 minutes, countdown sessions when the grant is used up.
    """
    if not session.is_open:
        return False
    elapsed = session_elapsed_seconds(session, now)
    if session.mode == "hour":
        return elapsed >= HOUR_MODE_AUTO_STOP_SECONDS
    if session.mode == "countdown":
        return elapsed >= (session.total_allocated_seconds or 0)
    return False
