from __future__ import annotations

from typing import Any

from labreports.types import ReportRow, coerce_number

PLACEHOLDER = '-'

_SHUNT_FIELDS = (
    'shunt_reading_before_test',
    'shunt_reading_after_test',
    'shunt_ref_start_reading',
    'shunt_ref_end_reading',
    'shunt_current_test',
    'shunt_creep_test',
    'shunt_dial_test',
    'shunt_error_percentage',
)
_NEUTRAL_FIELDS = tuple(name.replace('shunt_', 'neutral_', 1) for name in _SHUNT_FIELDS)


def present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def or_placeholder(value: Any, placeholder: str = PLACEHOLDER) -> str:
    if not present(value):
        return placeholder
    return str(value).strip()


def join_parts(parts: list[Any], sep: str = ' ') -> str:
    return sep.join(str(part).strip() for part in parts if present(part))


def dotted(count: int = 10) -> str:
    return '·' * count


def yes_no(value: bool | None) -> str:
    return 'YES' if value else 'NO'


def fmt_num(value: Any, digits: int | None = None) -> str:
    number = coerce_number(value)
    if number is None:
        return ''
    if digits is not None:
        return f'{number:.{digits}f}'
    if number.is_integer():
        return str(int(number))
    return f'{number:g}'


def fmt_money(value: Any) -> str:
    """CT deposit style: ``1500/-`` or ``1500.50/-``; text that is not a number passes through."""
    if not present(value):
        return PLACEHOLDER
    number = coerce_number(value)
    if number is None:
        return str(value)
    amount = f'{number:.2f}'
    if amount.endswith('.00'):
        amount = amount[:-3]
    return f'{amount}/-'


def fmt_fee(value: Any) -> str:
    if not present(value):
        return PLACEHOLDER
    number = coerce_number(value)
    if number is None:
        return str(value)
    return f'₹{fmt_num(number)}'


def difference(start: float | None, end: float | None) -> float | None:
    if start is None or end is None:
        return None
    return end - start


def percentage_error(meter_diff: float | None, ref_diff: float | None) -> float | None:
    if meter_diff is None or ref_diff is None or ref_diff == 0:
        return None
    return (meter_diff - ref_diff) / ref_diff * 100


def round2(value: float | None) -> float | None:
    if value is None:
        return None
    return round(value, 2)


def element_error(row: ReportRow, prefix: str) -> float | None:
    """Error % of the shunt or neutral element; computed from readings when not recorded."""
    recorded = getattr(row, f'{prefix}_error_percentage')
    if recorded is not None:
        return round2(recorded)
    meter = difference(
        getattr(row, f'{prefix}_reading_before_test'),
        getattr(row, f'{prefix}_reading_after_test'),
    )
    ref = difference(
        getattr(row, f'{prefix}_ref_start_reading'),
        getattr(row, f'{prefix}_ref_end_reading'),
    )
    return round2(percentage_error(meter, ref))


def combined_import_error(row: ReportRow) -> float | None:
    if row.error_percentage_import is not None:
        return round2(row.error_percentage_import)
    shunt = element_error(row, 'shunt')
    if shunt is not None:
        return shunt
    return element_error(row, 'neutral')


def has_shunt(row: ReportRow) -> bool:
    return any(present(getattr(row, name)) for name in _SHUNT_FIELDS)


def has_neutral(row: ReportRow) -> bool:
    return any(present(getattr(row, name)) for name in _NEUTRAL_FIELDS)
