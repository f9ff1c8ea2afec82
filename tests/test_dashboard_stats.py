from __future__ import annotations

import pathlib
import sys
from datetime import date

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from cost_estimator import new_report
from dashboard_stats import DashboardStats, compute_dashboard_stats, recent_reports, trek_popularity


def _reports():
    return [
        new_report("a", trek_name="Langtang", start_date=date(2024, 1, 5)),
        new_report("b", trek_name="Everest Base Camp", start_date=date(2024, 3, 1)),
        new_report("c", trek_name="Everest Base Camp", start_date=None),
        new_report("d", trek_name="", start_date=date(2024, 2, 1)),
    ]


def test_compute_dashboard_stats_counts_collections() -> None:
    stats = compute_dashboard_stats(_reports(), [1, 2, 3], ["trek"], [], ["p1", "p2"])

    assert stats == DashboardStats(reports=4, travelers=3, treks=1, guides=0, porters=2)


def test_recent_reports_newest_first_undated_last() -> None:
    assert [report.group_id for report in recent_reports(_reports(), limit=3)] == ["b", "d", "a"]
    assert [report.group_id for report in recent_reports(_reports())][-1] == "c"


def test_trek_popularity_ranks_by_group_count() -> None:
    assert trek_popularity(_reports()) == [
        {"trek": "Everest Base Camp", "groups": 2},
        {"trek": "Langtang", "groups": 1},
        {"trek": "Unknown", "groups": 1},
    ]
