from pydantic import BaseModel
from uuid import UUID
from budgetsync.models.shared import Money


class CategoryBreakdownItem(BaseModel):
    category_id: UUID
    category_name: str
    category_color: str | None = None
    total: Money


class BudgetStats(BaseModel):
    """Budget-health snapshot for one project, as shown on the dashboard."""
    total_budget: Money
    total_spent: Money
    spent_today: Money
    remaining: Money
    percent_used: Money
    percent_complete: int
    labor_spent: Money
    materials_spent: Money
    equipment_spent: Money
    subcontractors_spent: Money
    overhead_spent: Money
    projected_final_cost: Money
    variance: Money
    daily_burn_rate: Money
    days_remaining: int
    category_breakdown: list[CategoryBreakdownItem] = []
    uncategorized_total: Money
