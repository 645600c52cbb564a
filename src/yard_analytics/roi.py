"""ROI and spend estimates derived from finalized report metrics.

Every estimate is labelled as such. A consumer returns ``None`` when the
assumption it depends on is missing instead of guessing one, except for the
fully loaded labor rate, which defaults to ``DEFAULT_LABOR_RATE_PER_HOUR``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from yard_analytics.config import DEFAULT_LABOR_RATE_PER_HOUR, AssumptionsConfig

DRIVER_DAY_HOURS = 8
DOCK_HOURS_PER_DAY = 8
PREVENTED_HOURS_SAVED_EACH = 1.0

TRAILER_ERROR_TYPES = (
    ("trailer_marked_lost", "Trailer marked lost", "Gate check-out accuracy issues or carrier parking issues upon check-in"),
    ("yard_check_insert", "Yard check insert", "Gate check-in accuracy issues"),
    ("spot_edited", "Spot edited", "Yard driver YMS usage issues"),
    ("facility_edited", "Facility edited", "Shuttle/gate/campus operation issues"),
)


def round1(value: float) -> float:
    return round(value * 10) / 10


def _finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


def detention_avoidance_roi(prevented: int, assumptions: AssumptionsConfig) -> dict[str, Any] | None:
    cost = assumptions.detention_cost_per_hour
    if not _finite(cost):
        return None
    hours_saved = prevented * PREVENTED_HOURS_SAVED_EACH
    return {
        "label": "Detention avoidance estimate",
        "assumptions_used": {
            "detention_cost_per_hour": cost,
            "prevented_detention_hours_saved_each": PREVENTED_HOURS_SAVED_EACH,
        },
        "estimate": {
            "prevented_detention_events": prevented,
            "estimated_hours_saved": round1(hours_saved),
            "estimated_value": round(hours_saved * cost, 2),
        },
        "disclaimer": (
            "Estimate only. Assumes each prevented detention event corresponds to ~1 hour avoided."
        ),
    }


def detention_spend(
    in_detention: int,
    completed_events: int,
    total_hours: float,
    assumptions: AssumptionsConfig,
) -> dict[str, Any] | None:
    """Spend from detention threshold to departure.

    Without a cost assumption this still returns a stub carrying
    ``zero_detention_note`` when no detention occurred at all, so the absence
    of detention is visible; otherwise it returns ``None``.
    """
    cost = assumptions.detention_cost_per_hour
    if not _finite(cost):
        if in_detention == 0:
            return {
                "label": "Detention spend analysis",
                "assumptions_used": {},
                "estimate": {},
                "insights": [],
                "zero_detention_note": True,
                "disclaimer": "Enter a detention cost per hour to calculate detention spend.",
            }
        return None

    used = {"detention_cost_per_hour": cost}
    if in_detention > 0 and (completed_events == 0 or total_hours == 0):
        return {
            "label": "Detention spend analysis",
            "assumptions_used": used,
            "estimate": {
                "trailers_in_detention": in_detention,
                "completed_detention_events": 0,
                "total_detention_hours": 0,
                "detention_spend": 0,
            },
            "insights": [
                f"{in_detention} trailers in detention without a usable duration.",
                "Detention spend becomes calculable once departure timestamps are recorded.",
            ],
            "zero_detention_note": False,
            "disclaimer": "Cost shown reflects completed detention events only.",
        }
    if in_detention == 0:
        return {
            "label": "Detention spend analysis",
            "assumptions_used": used,
            "estimate": {"detention_events": 0, "total_detention_hours": 0, "detention_spend": 0},
            "insights": ["Detention spend this period: $0 (no detention events recorded)"],
            "zero_detention_note": False,
            "disclaimer": "",
        }

    spend = total_hours * cost
    avg_hours = total_hours / completed_events
    return {
        "label": "Detention spend analysis",
        "assumptions_used": used,
        "estimate": {
            "detention_events": completed_events,
            "total_detention_hours": round1(total_hours),
            "detention_spend": round(spend, 2),
            "avg_detention_hours": round1(avg_hours),
        },
        "insights": [
            f"Detention spend this period: ${round(spend):,} "
            f"({completed_events} trailers, {round1(total_hours)} total hours)",
            f"Average detention duration: {round1(avg_hours)} hours per event",
        ],
        "zero_detention_note": False,
        "disclaimer": "Calculated from the detention threshold to departure; pre-detention time excluded.",
    }


@dataclass(frozen=True)
class DailyDriverLoad:
    day: str
    moves: int
    drivers: int


@dataclass(frozen=True)
class DriverRoiInputs:
    avg_moves_per_driver_per_day: float | None
    total_moves: int
    total_days: int
    top_driver: str | None = None
    top_driver_moves: int = 0
    top_driver_days_worked: int = 0
    daily: Sequence[DailyDriverLoad] = field(default_factory=tuple)


def _staffing_split(daily: Sequence[DailyDriverLoad]) -> tuple[dict[str, Any], list[str]] | None:
    loads = [load for load in daily if load.drivers > 0]
    if len(loads) < 3:
        return None
    loads.sort(key=lambda load: load.drivers)
    third = math.ceil(len(loads) / 3)
    low, high = loads[:third], loads[-third:]

    def _summary(group: list[DailyDriverLoad]) -> dict[str, float]:
        return {
            "avg_drivers": round1(sum(load.drivers for load in group) / len(group)),
            "avg_moves_per_driver": round1(
                sum(round1(load.moves / load.drivers) for load in group) / len(group)
            ),
            "sample_size": len(group),
        }

    low_summary, high_summary = _summary(low), _summary(high)
    low_rate, high_rate = low_summary["avg_moves_per_driver"], high_summary["avg_moves_per_driver"]
    insights: list[str] = []
    if high_rate > 0 and low_rate > high_rate * 1.1:
        more = round((low_rate / high_rate - 1) * 100)
        insights.append(
            f"Days with fewer drivers (~{low_summary['avg_drivers']}) are {more}% more productive "
            f"per driver ({low_rate} vs {high_rate} moves/driver)"
        )
        insights.append("Too many drivers may mean not enough moves to go around")
    elif low_rate > 0 and high_rate > low_rate * 1.1:
        more = round((high_rate / low_rate - 1) * 100)
        insights.append(
            f"Days with more drivers (~{high_summary['avg_drivers']}) are {more}% more productive "
            f"per driver ({high_rate} vs {low_rate} moves/driver)"
        )
    else:
        insights.append(
            f"Productivity per driver is consistent across staffing levels (~{low_rate}-{high_rate} moves/driver)"
        )
    return {"low_staff_days": low_summary, "high_staff_days": high_summary}, insights


def labor_roi(inputs: DriverRoiInputs, assumptions: AssumptionsConfig) -> dict[str, Any] | None:
    target = assumptions.target_moves_per_driver_per_day
    if not _finite(target):
        return None
    rate = assumptions.labor_fully_loaded_rate_per_hour
    rate = rate if _finite(rate) else DEFAULT_LABOR_RATE_PER_HOUR
    used = {
        "labor_fully_loaded_rate_per_hour": rate,
        "target_moves_per_driver_per_day": target,
        "driver_day_hours": DRIVER_DAY_HOURS,
    }
    avg = inputs.avg_moves_per_driver_per_day
    if not _finite(avg) and inputs.total_moves == 0:
        return {
            "label": "Driver performance and staffing analysis",
            "assumptions_used": used,
            "estimate": None,
            "staffing_analysis": None,
            "insights": [],
            "disclaimer": "Insufficient data to estimate driver performance.",
        }

    performance_pct = gap = surplus = minutes_impact = money_impact = fte = None
    if _finite(avg) and avg > 0:
        performance_pct = round(avg / target * 100)
        gap = max(0.0, target - avg)
        surplus = max(0.0, avg - target)
        if avg >= target:
            minutes_impact = round1(surplus / avg * DRIVER_DAY_HOURS * 60)
            money_impact = round(surplus / avg * DRIVER_DAY_HOURS * rate, 2)
        else:
            gap_hours = gap / target * DRIVER_DAY_HOURS
            minutes_impact = -round1(gap_hours * 60)
            money_impact = -round(gap_hours * rate, 2)
        if inputs.total_moves > 0:
            fte = round1(inputs.total_moves / target)

    staffing: dict[str, Any] = {}
    insights: list[str] = []
    drivers_per_day = [load.drivers for load in inputs.daily]
    avg_drivers = round1(sum(drivers_per_day) / len(drivers_per_day)) if drivers_per_day else None
    if avg_drivers is not None:
        staffing["avg_drivers_per_day"] = avg_drivers

    if performance_pct is not None:
        verb = "averaging" if performance_pct >= 100 else "at"
        insights.append(
            f"Drivers {verb} {performance_pct}% of target ({round1(avg)} moves/day vs {target:g} target)"
        )

    if inputs.total_moves > 0 and inputs.total_days > 0:
        moves_per_day = round1(inputs.total_moves / inputs.total_days)
        needed = round1(moves_per_day / target)
        staffing.update(
            avg_moves_per_day=moves_per_day,
            total_days=inputs.total_days,
            total_moves=inputs.total_moves,
            drivers_needed_at_target=needed,
        )
        insights.append(f"Total facility workload: {moves_per_day} moves/day over {inputs.total_days} days")
        insights.append(f"At target rate ({target:g}/day), you'd need ~{needed} drivers/day")

    if inputs.top_driver is not None:
        days = inputs.top_driver_days_worked
        top_rate = round1(inputs.top_driver_moves / days) if days else None
        staffing.update(
            top_driver_name=inputs.top_driver,
            top_driver_total_moves=inputs.top_driver_moves,
            top_driver_days_worked=days,
            top_driver_avg_per_day=top_rate,
        )
        if top_rate is not None and _finite(avg) and avg > 0 and top_rate > avg:
            staffing["top_vs_avg_ratio"] = round1(top_rate / avg)
            text = f'Top performer "{inputs.top_driver}" averages {top_rate} moves/day over {days} days worked'
            if top_rate >= target:
                text += f" ({round(top_rate / target * 100)}% of target)"
            insights.append(text)
        if top_rate and inputs.total_moves > 0 and inputs.total_days > 0 and avg_drivers:
            like_top = round1(inputs.total_moves / inputs.total_days / top_rate)
            staffing["drivers_needed_if_all_like_top"] = like_top
            if avg_drivers > like_top:
                insights.append(
                    f"If all drivers performed like the top performer, you'd need ~{like_top}/day "
                    f"vs ~{avg_drivers} avg drivers/day ({round1(avg_drivers - like_top)} fewer)"
                )

    split = _staffing_split(inputs.daily)
    if split is not None:
        staffing["productivity_by_staffing"], split_insights = split
        insights.extend(split_insights)

    needed = staffing.get("drivers_needed_at_target")
    if needed and avg_drivers:
        staffing["staffing_delta"] = round1(avg_drivers - needed)
        if avg_drivers > needed * 1.3:
            insights.append(f"Potential overstaffing: ~{avg_drivers} drivers/day avg vs ~{needed} needed at target rate")
        elif avg_drivers < needed * 0.8:
            insights.append(f"Potential understaffing: ~{avg_drivers} drivers/day avg vs ~{needed} needed at target rate")

    return {
        "label": "Driver performance and staffing analysis",
        "assumptions_used": used,
        "estimate": {
            "avg_moves_per_driver_per_day": round1(avg) if _finite(avg) else None,
            "target_moves_per_driver_per_day": target,
            "performance_vs_target_pct": performance_pct,
            "gap_moves_per_day": None if gap is None else round1(gap),
            "surplus_moves_per_day": round1(surplus) if surplus else None,
            "total_moves": inputs.total_moves or None,
            "driver_days_equivalent": fte,
            "time_impact_minutes_per_driver_day": minutes_impact,
            "money_impact_per_driver_day": money_impact,
        },
        "staffing_analysis": staffing,
        "insights": insights,
        "disclaimer": (
            "Estimates based on the target moves assumption. Staffing analysis uses approximate driver counts."
        ),
    }


def dock_door_roi(
    turns_per_door_per_day: float | None,
    unique_doors: int,
    total_turns: int,
    total_days: int,
    assumptions: AssumptionsConfig,
) -> dict[str, Any]:
    target = assumptions.target_turns_per_door_per_day
    target = target if _finite(target) else None
    cost = assumptions.cost_per_dock_door_hour
    cost = cost if _finite(cost) else None

    if not _finite(turns_per_door_per_day) or turns_per_door_per_day == 0:
        return {
            "label": "Dock door throughput analysis",
            "assumptions_used": {"target_turns_per_door_per_day": target, "cost_per_dock_door_hour": cost},
            "estimate": None,
            "insights": ["Insufficient data to calculate dock door throughput analysis."],
            "disclaimer": "Dock door turn data not available.",
        }

    rate = round1(turns_per_door_per_day)
    insights = [f"Dock doors averaging {rate} turns/door/day"]
    if total_turns and total_days:
        insights.append(f"Total: {total_turns} turns over {total_days} days across {unique_doors} doors")
    estimate: dict[str, Any] = {
        "avg_turns_per_door_per_day": rate,
        "unique_doors": unique_doors,
        "total_turns": total_turns,
        "total_days": total_days,
    }

    if target is not None:
        performance_pct = round(turns_per_door_per_day / target * 100)
        gap = max(0.0, target - turns_per_door_per_day)
        surplus = max(0.0, turns_per_door_per_day - target)
        insights[0] = f"Dock doors averaging {rate} turns/day vs {target:g} target ({performance_pct}%)"
        estimate.update(
            target_turns_per_door_per_day=target,
            performance_vs_target_pct=performance_pct,
            gap_turns_per_day=round1(gap) if gap > 0 else None,
            surplus_turns_per_day=round1(surplus) if surplus > 0 else None,
        )
        if performance_pct >= 100:
            insights.append(f"Exceeding target by {round1(surplus)} turns/door/day")
        else:
            insights.append(f"Below target by {round1(gap)} turns/door/day")

        if cost is not None:
            cost_per_turn = cost * DOCK_HOURS_PER_DAY / target
            doors = unique_doors or 1
            gap_value = gap * cost_per_turn * doors
            surplus_value = surplus * cost_per_turn * doors
            estimate["daily_gap_value"] = round1(gap_value) if gap > 0 else None
            estimate["daily_surplus_value"] = round1(surplus_value) if surplus > 0 else None
            if performance_pct >= 100 and surplus_value > 0:
                insights.append(f"Efficiency value: ~${round1(surplus_value)}/day in additional throughput")
            elif gap_value > 0:
                insights.append(f"Opportunity cost: ~${round1(gap_value)}/day in unrealized capacity")

    return {
        "label": "Dock door throughput analysis",
        "assumptions_used": {
            "target_turns_per_door_per_day": target,
            "cost_per_dock_door_hour": cost,
            "hours_per_day": DOCK_HOURS_PER_DAY,
        },
        "estimate": estimate,
        "insights": insights,
        "disclaimer": (
            "Estimates based on the target turns assumption."
            if target is not None
            else "Add target turns/door/day to enable performance comparison."
        ),
    }


def trailer_error_rate_analysis(
    error_counts: Mapping[str, int],
    errors_by_period: Sequence[int],
    total_rows: int,
    total_days: int,
) -> dict[str, Any]:
    total_errors = sum(error_counts.get(key, 0) for key, _, _ in TRAILER_ERROR_TYPES)
    if total_errors == 0:
        return {
            "label": "Error rate analysis",
            "assumptions_used": {},
            "estimate": {"total_errors": 0, "error_rate_trend_pct": None},
            "insights": ["No error-indicating events detected in this period."],
            "error_breakdown": [],
            "disclaimer": "Error events tracked: trailer marked lost, yard check insert, spot edited, facility edited.",
        }

    insights = [f"Total error-indicating events: {total_errors}"]
    trend_pct = None
    trend_direction = None
    if len(errors_by_period) >= 3:
        half = len(errors_by_period) // 2
        first = errors_by_period[:half]
        second = errors_by_period[math.ceil(len(errors_by_period) / 2) :]
        first_avg = sum(first) / len(first)
        second_avg = sum(second) / len(second)
        if first_avg > 0:
            trend_pct = round((second_avg - first_avg) / first_avg * 100)
            trend_direction = "increased" if trend_pct > 0 else "decreased" if trend_pct < 0 else "stable"
            if abs(trend_pct) >= 10:
                insights.append(f"Error rate {trend_direction} by {abs(trend_pct)}% over the analysis period")
            else:
                insights.append("Error rate relatively stable over the analysis period")

    breakdown = sorted(
        (
            {
                "type": label,
                "count": error_counts[key],
                "pct_of_total": round(error_counts[key] / total_errors * 100),
                "indicator": indicator,
            }
            for key, label, indicator in TRAILER_ERROR_TYPES
            if error_counts.get(key, 0) > 0
        ),
        key=lambda item: -item["count"],
    )
    top = breakdown[0]
    insights.append(
        f'Most common: "{top["type"]}" ({top["count"]} events, {top["pct_of_total"]}% of errors): {top["indicator"]}'
    )
    return {
        "label": "Error rate analysis",
        "assumptions_used": {},
        "estimate": {
            "total_errors": total_errors,
            "total_rows": total_rows,
            "total_days": total_days,
            "error_rate_per_day": round1(total_errors / total_days) if total_days > 0 else None,
            "error_rate_trend_pct": trend_pct,
            "error_rate_trend_direction": trend_direction,
        },
        "insights": insights,
        "error_breakdown": breakdown,
        "disclaimer": (
            'Error events indicate operational accuracy issues. High "facility edited" counts may be '
            "expected in campus operations without inter-facility gates."
        ),
    }
