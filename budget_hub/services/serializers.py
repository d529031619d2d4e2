"""Row → JSON dict helpers shared by the routers."""
from decimal import Decimal
from typing import Optional

from ..models.models import (
    AdminActivityLog,
    BudgetCategory,
    BudgetVersion,
    BusinessUnit,
    Expense,
    Notification,
    Project,
    ProjectMilestone,
    ProjectTeam,
    User,
)


def _id(v) -> Optional[str]:
    return str(v) if v is not None else None


def _num(v) -> Optional[float]:
    if v is None:
        return None
    return float(v) if isinstance(v, Decimal) else v


def _iso(v) -> Optional[str]:
    return v.isoformat() if v is not None else None


def user_to_dict(u: User) -> dict:
    return {
        "id": str(u.id),
        "email": u.email,
        "full_name": u.full_name,
        "department": u.department,
        "phone": u.phone,
        "role": u.role,
        "is_active": u.is_active,
        "business_unit_id": _id(u.business_unit_id),
        "created_at": _iso(u.created_at),
        "last_login_at": _iso(u.last_login_at),
    }


def project_to_dict(p: Project) -> dict:
    return {
        "id": str(p.id),
        "name": p.name,
        "description": p.description,
        "total_budget": _num(p.total_budget),
        "allocated_budget": _num(p.allocated_budget),
        "spent_budget": _num(p.spent_budget),
        "currency": p.currency,
        "start_date": _iso(p.start_date),
        "end_date": _iso(p.end_date),
        "status": p.status,
        "department": p.department,
        "business_unit_id": _id(p.business_unit_id),
        "business_unit_name": p.business_unit.name if p.business_unit else None,
        "manager_id": _id(p.manager_id),
        "manager_name": p.manager.full_name if p.manager else None,
        "created_by": _id(p.created_by),
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
    }


def team_member_to_dict(m: ProjectTeam) -> dict:
    u = m.user
    return {
        "id": str(m.id),
        "project_id": str(m.project_id),
        "project_name": m.project.name if m.project else None,
        "user_id": str(m.user_id),
        "role": m.role,
        "user_name": u.full_name if u else None,
        "user_email": u.email if u else None,
        "user_department": u.department if u else None,
        "created_at": _iso(m.created_at),
    }


def expense_to_dict(e: Expense) -> dict:
    return {
        "id": str(e.id),
        "project_id": str(e.project_id),
        "project_name": e.project.name if e.project else None,
        "category_id": _id(e.category_id),
        "category_name": e.category.name if e.category else None,
        "description": e.description,
        "amount": _num(e.amount),
        "expense_date": _iso(e.expense_date),
        "status": e.status,
        "submitted_by": _id(e.submitted_by),
        "submitted_by_name": e.submitter.full_name if e.submitter else None,
        "approved_by": _id(e.approved_by),
        "approved_by_name": e.approver.full_name if e.approver else None,
        "approval_comments": e.approval_comments,
        "created_at": _iso(e.created_at),
        "updated_at": _iso(e.updated_at),
    }


def category_to_dict(c: BudgetCategory, expense_count: int = 0, total_spent=0) -> dict:
    return {
        "id": str(c.id),
        "project_id": str(c.project_id),
        "name": c.name,
        "description": c.description,
        "allocated_amount": _num(c.allocated_amount),
        "budget_limit": _num(c.budget_limit),
        "budget_version_id": _id(c.budget_version_id),
        "expense_count": int(expense_count or 0),
        "total_spent": _num(total_spent or Decimal(0)),
        "created_at": _iso(c.created_at),
        "updated_at": _iso(c.updated_at),
    }


def version_to_dict(v: BudgetVersion) -> dict:
    return {
        "id": str(v.id),
        "project_id": str(v.project_id),
        "version_number": v.version_number,
        "title": v.title,
        "description": v.description,
        "status": v.status,
        "created_by": _id(v.created_by),
        "approved_by": _id(v.approved_by),
        "approved_at": _iso(v.approved_at),
        "created_at": _iso(v.created_at),
        "updated_at": _iso(v.updated_at),
    }


def business_unit_to_dict(bu: BusinessUnit, **extra) -> dict:
    d = {
        "id": str(bu.id),
        "name": bu.name,
        "description": bu.description,
        "manager_id": _id(bu.manager_id),
        "created_at": _iso(bu.created_at),
        "updated_at": _iso(bu.updated_at),
    }
    d.update({k: _num(v) for k, v in extra.items()})
    return d


def milestone_to_dict(m: ProjectMilestone) -> dict:
    return {
        "id": str(m.id),
        "project_id": str(m.project_id),
        "project_name": m.project.name if m.project else None,
        "title": m.title,
        "description": m.description,
        "due_date": _iso(m.due_date),
        "status": m.status,
        "progress": m.progress,
        "completion_date": _iso(m.completion_date),
        "created_by": _id(m.created_by),
        "created_at": _iso(m.created_at),
        "updated_at": _iso(m.updated_at),
    }


def notification_to_dict(n: Notification) -> dict:
    return {
        "id": str(n.id),
        "user_id": str(n.user_id),
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "read": n.read,
        "action_url": n.action_url,
        "created_at": _iso(n.created_at),
    }


def activity_to_dict(a: AdminActivityLog, admin_name: Optional[str] = None) -> dict:
    return {
        "id": str(a.id),
        "admin_id": _id(a.admin_id),
        "admin_name": admin_name,
        "action": a.action,
        "target_table": a.target_table,
        "target_id": a.target_id,
        "details": a.details,
        "created_at": _iso(a.created_at),
    }
