"""Token estimation and usage ledger summaries."""

import math
from collections.abc import Iterable
from datetime import UTC, datetime

from gateway_api.constants import CHARS_PER_TOKEN, USAGE_COST_PER_TOKEN
from gateway_api.schemas import UsageSummaryItem
from gateway_api.storage.base import UsageRecord


def estimate_tokens(text: str) -> int:
    """Rough estimate: about four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def start_of_day(now: datetime | None = None) -> datetime:
    now = now or datetime.now(UTC)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def summarize_usage(records: Iterable[UsageRecord]) -> list[UsageSummaryItem]:
    totals: dict[str, list[int]] = {}
    for record in records:
        tokens, operations = totals.setdefault(record.model, [0, 0])
        totals[record.model] = [tokens + record.total_tokens, operations + 1]

    return [
        UsageSummaryItem(
            model=model,
            tokens=tokens,
            operations=operations,
            cost=round(tokens * USAGE_COST_PER_TOKEN, 6),
        )
        for model, (tokens, operations) in sorted(totals.items())
    ]
