"""
Module: timesheet_kernel.selectors.base
Responsibility: Abstract base class for read-only list and report queries,
    plus the two helpers every selector shares: page normalization and the
    translation of a ListScope into a SQL WHERE clause.
Architecture position: Kernel > Selectors.  May import from db/, models/,
    domain/ and the row converters in store/.  MUST NOT import from
    services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: frozen dataclasses, never ORM instances.
    - A ListScope with no criteria yields a clause that matches no rows;
      an unrestricted scope yields no clause at all.
"""

from abc import ABC
from typing import Any

from sqlalchemy import and_, false, func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement, Select

from timesheet_kernel.domain.access_policy import ListScope
from timesheet_kernel.models import Project, ProjectAssignment

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def normalize_page(page: int | None, page_size: int | None) -> tuple[int, int]:
    """Clamp paging input: page >= 1, 1 <= page_size <= MAX_PAGE_SIZE."""
    page = page if page and page > 0 else 1
    if not page_size or page_size < 1:
        page_size = DEFAULT_PAGE_SIZE
    return page, min(page_size, MAX_PAGE_SIZE)


def scope_clause(
    scope: ListScope,
    *,
    project_id_column: Any,
    user_column: Any = None,
) -> ColumnElement[bool] | None:
    """
    Build the WHERE clause for ``scope``.

    The query must already join ``Project``; area and general-project
    criteria are expressed against it.  ``user_column`` is the column the
    ``user_id`` criterion applies to (owner or assignee); when a selector
    has no such column the criterion contributes nothing.

    Returns None for an unrestricted scope.
    """
    if scope.unrestricted:
        return None

    criteria: list[ColumnElement[bool]] = []
    if scope.area_id is not None:
        criteria.append(Project.area_id == scope.area_id)
    if scope.user_id is not None and user_column is not None:
        criteria.append(user_column == scope.user_id)
    if scope.member_user_id is not None:
        memberships = select(ProjectAssignment.project_id).where(
            ProjectAssignment.user_id == scope.member_user_id,
            ProjectAssignment.is_active.is_(True),
        )
        criteria.append(project_id_column.in_(memberships))
    if scope.general_area_id is not None:
        criteria.append(
            and_(Project.is_general.is_(True), Project.area_id == scope.general_area_id)
        )

    if not criteria:
        return false()
    return or_(*criteria)


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs or computed results.

    Non-goals:
        - No authorization.  Callers pass the ListScope the AccessPolicy
          derived for their principal.
    """

    def __init__(self, session: Session):
        self.session = session

    def _count(self, query: Select) -> int:
        return self.session.execute(
            select(func.count()).select_from(query.order_by(None).subquery())
        ).scalar_one()

    @staticmethod
    def _apply_scope(query: Select, clause: ColumnElement[bool] | None) -> Select:
        return query if clause is None else query.where(clause)
