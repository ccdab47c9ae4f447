from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from labreports.types import ReportRow

# Whole words only: "BOOK" or "PASSED" must not count. Negations such as
# "NOT OK" still match, which is how the lab's existing reports count them.
_POSITIVE_PATTERN = re.compile(r'\bok\b|\bpass\b')

RESULT_SEPARATOR = ' — '


@dataclass(frozen=True)
class RowClassification:
    is_positive: bool
    display_text: str


@dataclass(frozen=True)
class TabularSummary:
    total: int
    positive: int
    negative: int


def _clean(value: str | None) -> str:
    return str(value or '').strip()


def is_positive(row: ReportRow) -> bool:
    merged = f'{row.test_result or ""} {row.remark or ""}'.lower()
    return bool(_POSITIVE_PATTERN.search(merged))


def result_text(row: ReportRow) -> str:
    code = _clean(row.test_result)
    remark = _clean(row.remark)
    if code and remark and code.upper() != 'OK':
        return f'{code}{RESULT_SEPARATOR}{remark}'
    if code:
        return code
    return remark or '-'


def classify(row: ReportRow) -> RowClassification:
    return RowClassification(is_positive=is_positive(row), display_text=result_text(row))


def summarize(rows: Iterable[ReportRow]) -> TabularSummary:
    total = 0
    positive = 0
    for row in rows:
        total += 1
        if is_positive(row):
            positive += 1
    return TabularSummary(total=total, positive=positive, negative=total - positive)
