"""
Module: timesheet_kernel.db.types
Responsibility: Hours conversion and rounding helpers.  Every model, store
    and service goes through these so hours are stored and compared with
    identical precision.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    store/, services/, and selectors/.  MUST NOT import from those layers.

Invariants enforced:
    - No floats for hours.  Inputs are converted through ``to_hours`` which
      goes via ``str`` so 0.1 stays 0.1.
    - ``round_hours`` is the only sanctioned rounding function for hours.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


HOURS_DECIMAL_PLACES = 2
_QUANTUM = Decimal(1).scaleb(-HOURS_DECIMAL_PLACES)

ZERO_HOURS = Decimal("0")


def to_hours(value: Any) -> Decimal:
    """
    Convert an inbound hours value to Decimal.

    Raises:
        ValueError: value is not numeric (or is NaN/infinite).
    """
    if isinstance(value, bool):
        raise ValueError(f"Hours must be numeric, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Hours must be numeric, got {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Hours must be finite, got {value!r}")
    return result


def round_hours(value: Decimal) -> Decimal:
    """Round hours to storage precision (2 places, half-up)."""
    return value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)
