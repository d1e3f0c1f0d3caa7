"""Persistence collaborator: the Store protocol and its SQL implementation."""

from timesheet_kernel.store.base import Store
from timesheet_kernel.store.sql_store import SqlStore

__all__ = ["SqlStore", "Store"]
