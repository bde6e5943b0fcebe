"""Budget statistics for the project dashboard.

All money is summed as Decimal. Rows come straight from PostgREST, where
numeric columns arrive as floats or strings, so every value goes through
``Decimal(str(value))`` before any arithmetic.
"""
import asyncio
import datetime as dt
from decimal import Decimal, ROUND_HALF_UP
from collections.abc import Iterable
from uuid import UUID
from loguru import logger
from budgetsync.database import get_supabase, execute_async
from budgetsync.errors import NotFoundError
from budgetsync.models.budget import BudgetStats, CategoryBreakdownItem

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def _dec(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    return Decimal(str(value))


def _as_date(value) -> dt.date | None:
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value)[:10])


def _as_datetime(value) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    if not value:
        return dt.datetime.min.replace(tzinfo=dt.timezone.utc)
    parsed = dt.datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ── Per-entry contributions ──

def timesheet_cost(row: dict) -> Decimal:
    return _dec(row.get("hours")) * _dec(row.get("pay_rate"))


def equipment_cost(row: dict) -> Decimal:
    return _dec(row.get("fuel_cost")) + _dec(row.get("rental_cost"))


def flat_cost(row: dict) -> Decimal:
    return _dec(row.get("cost"))


# ── Ratios ──

def percent_used(total_spent: Decimal, total_budget: Decimal) -> Decimal:
    """Share of the budget spent, in percent. A zero budget reports 0."""
    if total_budget == 0:
        return ZERO
    return _cents(total_spent / total_budget * HUNDRED)


def latest_percent_complete(progress_reports: Iterable[dict]) -> int:
    """Completion of the newest report by date, newest creation on ties."""
    reports = list(progress_reports)
    if not reports:
        return 0
    latest = max(
        reports,
        key=lambda r: (_as_date(r["date"]), _as_datetime(r.get("created_at"))),
    )
    return int(latest["percent_complete"])


def projected_final_cost(total_spent: Decimal, total_budget: Decimal, percent_complete: int) -> Decimal:
    """Linear extrapolation of spend to 100% complete."""
    if percent_complete <= 0:
        return total_budget
    return _cents(total_spent / Decimal(percent_complete) * HUNDRED)


def calculate_budget_stats(
    project: dict,
    *,
    timesheets: Iterable[dict] = (),
    equipment_logs: Iterable[dict] = (),
    subcontractor_entries: Iterable[dict] = (),
    overhead_entries: Iterable[dict] = (),
    progress_reports: Iterable[dict] = (),
    materials: Iterable[dict] = (),
    categories: Iterable[dict] = (),
    today: dt.date | None = None,
) -> BudgetStats:
    """Derive the dashboard figures from already-loaded rows.

    Pure and side-effect free; ``get_budget_stats`` does the loading.
    """
    today = today or dt.date.today()
    progress_reports = list(progress_reports)
    report_dates = {str(r["id"]): _as_date(r["date"]) for r in progress_reports if r.get("id")}

    # (kind, cost, entry date, category_id) for every cost-bearing row
    contributions: list[tuple[str, Decimal, dt.date | None, str | None]] = []

    for row in timesheets:
        contributions.append(("labor", timesheet_cost(row), _as_date(row.get("date")), row.get("category_id")))
    for row in equipment_logs:
        contributions.append(("equipment", equipment_cost(row), _as_date(row.get("date")), row.get("category_id")))
    for row in subcontractor_entries:
        contributions.append(("subcontractors", flat_cost(row), _as_date(row.get("date")), row.get("category_id")))
    for row in overhead_entries:
        contributions.append(("overhead", flat_cost(row), _as_date(row.get("date")), row.get("category_id")))
    for row in materials:
        # Materials are dated by the progress report they were logged with
        entry_date = report_dates.get(str(row.get("progress_report_id")))
        if entry_date is None:
            entry_date = _as_date((row.get("progress_reports") or {}).get("date"))
        contributions.append(("materials", flat_cost(row), entry_date, row.get("category_id")))

    spent = {kind: ZERO for kind in ("labor", "equipment", "subcontractors", "overhead", "materials")}
    spent_today = ZERO
    for kind, cost, entry_date, _ in contributions:
        spent[kind] += cost
        if entry_date == today:
            spent_today += cost

    total_spent = (
        spent["labor"]
        + spent["equipment"]
        + spent["subcontractors"]
        + spent["overhead"]
        + spent["materials"]
    )
    total_budget = _dec(project.get("total_budget"))

    percent_complete = latest_percent_complete(progress_reports)

    start_date = _as_date(project["start_date"])
    days_since_start = max(1, (today - start_date).days)
    daily_burn_rate = _cents(total_spent / Decimal(days_since_start))

    projected = projected_final_cost(total_spent, total_budget, percent_complete)

    end_date = _as_date(project.get("end_date"))
    days_remaining = max(0, (end_date - today).days) if end_date else 0

    breakdown, uncategorized_total = _category_breakdown(contributions, categories)

    return BudgetStats(
        total_budget=total_budget,
        total_spent=total_spent,
        spent_today=spent_today,
        remaining=total_budget - total_spent,
        percent_used=percent_used(total_spent, total_budget),
        percent_complete=percent_complete,
        labor_spent=spent["labor"],
        materials_spent=spent["materials"],
        equipment_spent=spent["equipment"],
        subcontractors_spent=spent["subcontractors"],
        overhead_spent=spent["overhead"],
        projected_final_cost=projected,
        variance=projected - total_budget,
        daily_burn_rate=daily_burn_rate,
        days_remaining=days_remaining,
        category_breakdown=breakdown,
        uncategorized_total=uncategorized_total,
    )


def _category_breakdown(
    contributions: list[tuple[str, Decimal, dt.date | None, str | None]],
    categories: Iterable[dict],
) -> tuple[list[CategoryBreakdownItem], Decimal]:
    by_id = {str(c["id"]): c for c in categories}
    totals: dict[str, Decimal] = {}
    uncategorized = ZERO

    for _, cost, _, category_id in contributions:
        key = str(category_id) if category_id else None
        if key is None or key not in by_id:
            # Deleted categories leave a dangling or null reference
            uncategorized += cost
            continue
        totals[key] = totals.get(key, ZERO) + cost

    items = [
        CategoryBreakdownItem(
            category_id=UUID(key),
            category_name=by_id[key]["name"],
            category_color=by_id[key].get("color"),
            total=total,
        )
        for key, total in totals.items()
    ]
    items.sort(key=lambda item: item.category_name.lower())
    return items, uncategorized


async def get_budget_stats(project_id: UUID, today: dt.date | None = None) -> BudgetStats:
    """Load every cost-bearing row of a project and aggregate it.

    The independent reads run concurrently; if any of them fails the whole
    aggregation fails, no partial figures are returned.
    """
    db = get_supabase()
    pid = str(project_id)

    project_result = await execute_async(
        db.table("projects").select("*").eq("id", pid).maybe_single()
    )
    if not project_result or not project_result.data:
        raise NotFoundError("Project not found")
    project = project_result.data

    def by_project(table: str):
        return execute_async(db.table(table).select("*").eq("project_id", pid))

    try:
        (
            timesheets,
            equipment_logs,
            subcontractor_entries,
            overhead_entries,
            progress_reports,
            materials,
            categories,
        ) = await asyncio.gather(
            by_project("timesheets"),
            by_project("equipment_logs"),
            by_project("subcontractor_entries"),
            by_project("overhead_entries"),
            by_project("progress_reports"),
            execute_async(
                db.table("materials")
                .select("*, progress_reports!inner(project_id, date)")
                .eq("progress_reports.project_id", pid)
            ),
            by_project("categories"),
        )
    except Exception as e:
        logger.error(f"Budget stats aggregation failed for project {pid}: {e}")
        raise

    stats = calculate_budget_stats(
        project,
        timesheets=timesheets.data,
        equipment_logs=equipment_logs.data,
        subcontractor_entries=subcontractor_entries.data,
        overhead_entries=overhead_entries.data,
        progress_reports=progress_reports.data,
        materials=materials.data,
        categories=categories.data,
        today=today,
    )

    logger.debug(
        f"Budget stats for project {pid}: spent={stats.total_spent} "
        f"of {stats.total_budget} ({stats.percent_used}%)"
    )
    return stats
