"""
Business-day arithmetic for delivery date estimates
"""
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

from .errors import InvalidParameter

HOURS_PER_WORK_DAY = 8

# date.weekday(): Monday is 0, Saturday 5, Sunday 6
WEEKEND = (5, 6)

DateLike = Union[date, str]


def parse_date(value: DateLike, field: str = "date") -> date:
    """Accept a date, a datetime or an ISO YYYY-MM-DD string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise InvalidParameter(f"Fecha inválida en '{field}': {value!r}")


def is_business_day(day: date) -> bool:
    return day.weekday() not in WEEKEND


def work_days_for(estimated_hours: Union[int, float, Decimal]) -> int:
    """Eight-hour work days needed for a workload, never less than one"""
    return max(1, math.ceil(estimated_hours / HOURS_PER_WORK_DAY))


def compute_tentative_delivery_date(
    entry_date: DateLike,
    estimated_hours: Union[int, float, Decimal],
    tolerance_days: int,
) -> date:
    """
    Estimate the delivery date of a work.

    The category workload is converted to work days (8 hours each, at least
    one) and the tolerance days are added on top. Counting starts the day
    after entry and only Monday to Friday count; weekends are stepped over.
    Closed days and holidays are not taken into account.
    """
    start = parse_date(entry_date, "entry_date")

    if isinstance(estimated_hours, bool) or not isinstance(estimated_hours, (int, float, Decimal)):
        raise InvalidParameter(f"Horas estimadas inválidas: {estimated_hours!r}")
    if isinstance(estimated_hours, float) and not math.isfinite(estimated_hours):
        raise InvalidParameter(f"Horas estimadas inválidas: {estimated_hours!r}")
    if estimated_hours < 0:
        raise InvalidParameter("Las horas estimadas no pueden ser negativas")
    if isinstance(tolerance_days, bool) or not isinstance(tolerance_days, int):
        raise InvalidParameter(f"Días de tolerancia inválidos: {tolerance_days!r}")
    if tolerance_days < 0:
        raise InvalidParameter("Los días de tolerancia no pueden ser negativos")

    total_days = work_days_for(estimated_hours) + tolerance_days
    # Business days never outnumber calendar days
    if total_days > (date.max - start).days:
        raise InvalidParameter("La fecha de entrega estimada queda fuera del calendario")

    current = start
    counted = 0
    try:
        while counted < total_days:
            current += timedelta(days=1)
            if is_business_day(current):
                counted += 1
    except OverflowError:
        raise InvalidParameter("La fecha de entrega estimada queda fuera del calendario")
    return current


def is_overdue(status: str, tentative_delivery_date: date, today: Optional[date] = None) -> bool:
    """A work is overdue when still open past its promised date"""
    if status in ("delivered", "cancelled"):
        return False
    today = today or date.today()
    return tentative_delivery_date < today
