"""CSV budget report for a project."""
import asyncio
import csv
import io
from decimal import Decimal
from uuid import UUID
from budgetsync.database import get_supabase, execute_async
from budgetsync.models.budget import BudgetStats
from budgetsync.services.budget_stats import timesheet_cost, equipment_cost, flat_cost

REPORT_TITLE = "BudgetSync Field - Project Report"


def export_filename(project: dict) -> str:
    return f"budget-report-{project['id']}.csv"


async def load_export_rows(project_id: UUID) -> dict[str, list[dict]]:
    """Every cost entry of the project, newest first."""
    db = get_supabase()
    pid = str(project_id)

    def by_project(table: str):
        return execute_async(
            db.table(table).select("*").eq("project_id", pid).order("date", desc=True)
        )

    timesheets, equipment_logs, subcontractor_entries, overhead_entries, materials = await asyncio.gather(
        by_project("timesheets"),
        by_project("equipment_logs"),
        by_project("subcontractor_entries"),
        by_project("overhead_entries"),
        execute_async(
            db.table("materials")
            .select("*, progress_reports!inner(project_id, date)")
            .eq("progress_reports.project_id", pid)
        ),
    )
    return {
        "timesheets": timesheets.data,
        "equipment_logs": equipment_logs.data,
        "subcontractor_entries": subcontractor_entries.data,
        "overhead_entries": overhead_entries.data,
        "materials": materials.data,
    }


def _money(value) -> str:
    return f"{value:.2f}"


def build_project_csv(
    project: dict,
    stats: BudgetStats | None = None,
    *,
    timesheets: list[dict] = (),
    equipment_logs: list[dict] = (),
    subcontractor_entries: list[dict] = (),
    overhead_entries: list[dict] = (),
    materials: list[dict] = (),
) -> str:
    """Render the report: a header block, then one section per entry kind.

    Line totals use the same cost functions as the dashboard, so the
    sections add up to ``stats.total_spent``.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")

    writer.writerow([REPORT_TITLE])
    writer.writerow(["Project", project["name"]])
    writer.writerow(["Start Date", project["start_date"]])
    writer.writerow(["Total Budget", _money(Decimal(str(project["total_budget"])))])
    if stats is not None:
        writer.writerow(["Total Spent", _money(stats.total_spent)])
        writer.writerow(["Remaining", _money(stats.remaining)])
        writer.writerow(["Percent Used", _money(stats.percent_used)])
        writer.writerow(["Percent Complete", stats.percent_complete])
    writer.writerow([])

    writer.writerow(["TIMESHEETS"])
    writer.writerow(["Date", "Employee", "Hours", "Pay Rate", "Total Cost", "Notes"])
    for t in timesheets:
        writer.writerow([
            t["date"], t["employee_name"], t["hours"], t["pay_rate"],
            _money(timesheet_cost(t)), t.get("notes") or "",
        ])
    writer.writerow([])

    writer.writerow(["EQUIPMENT LOGS"])
    writer.writerow(["Date", "Equipment", "Hours", "Fuel Cost", "Rental Cost", "Total Cost", "Notes"])
    for e in equipment_logs:
        writer.writerow([
            e["date"], e["equipment_name"], e["hours"], e.get("fuel_cost") or 0,
            e.get("rental_cost") or 0, _money(equipment_cost(e)), e.get("notes") or "",
        ])
    writer.writerow([])

    writer.writerow(["SUBCONTRACTORS"])
    writer.writerow(["Date", "Contractor", "Cost", "Description"])
    for s in subcontractor_entries:
        writer.writerow([s["date"], s["contractor_name"], _money(flat_cost(s)), s.get("description") or ""])
    writer.writerow([])

    writer.writerow(["OVERHEAD"])
    writer.writerow(["Date", "Description", "Cost"])
    for o in overhead_entries:
        writer.writerow([o["date"], o["description"], _money(flat_cost(o))])
    writer.writerow([])

    writer.writerow(["MATERIALS"])
    writer.writerow(["Date", "Item", "Quantity", "Unit", "Cost"])
    for m in materials:
        report = m.get("progress_reports") or {}
        writer.writerow([report.get("date", ""), m["item_name"], m["quantity"], m["unit"], _money(flat_cost(m))])

    return buf.getvalue()
