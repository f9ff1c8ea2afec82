"""Aggregates shown on the portal's home dashboard."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Sequence

from payments import payment_analytics
from team import team_availability


@dataclass(frozen=True)
class DashboardStats:
    reports: int
    travelers: int
    treks: int
    guides: int
    porters: int


def compute_dashboard_stats(
    reports: Sequence[Any],
    travelers: Sequence[Any],
    treks: Sequence[Any],
    guides: Sequence[Any],
    porters: Sequence[Any],
) -> DashboardStats:
    return DashboardStats(
        reports=len(reports),
        travelers=len(travelers),
        treks=len(treks),
        guides=len(guides),
        porters=len(porters),
    )


def recent_reports(reports: Sequence[Any], limit: int = 5) -> List[Any]:
    """Most recent groups by start date; undated groups sort last."""

    ordered = sorted(reports, key=lambda report: report.start_date or date.min, reverse=True)
    return ordered[:limit]


def trek_popularity(reports: Sequence[Any]) -> List[Dict[str, Any]]:
    counts = Counter(report.trek_name or "Unknown" for report in reports)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{"trek": name, "groups": count} for name, count in ranked]


__all__ = [
    "DashboardStats",
    "compute_dashboard_stats",
    "payment_analytics",
    "recent_reports",
    "team_availability",
    "trek_popularity",
]
