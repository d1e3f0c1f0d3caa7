"""
Timesheet Kernel

Role-scoped authorization and time-entry validation for a multi-area
time-tracking system:
- Calendar-date based time entries with merge-on-duplicate semantics
- Configurable past/future date windows and daily hour caps
- Automatic bi-weekly period assignment
- Role-scoped access predicates and list filters
"""

__version__ = "0.1.0"
