"""Workforce scheduling for a multi-organization CRM.

Modules:
- config: load and validate configuration (YAML or JSON) and logging setup
- errors: NotFound / BadRequest / Conflict / Forbidden
- timerange: inclusive overlap test, ISO week keys, date parsing
- domain: SQLAlchemy models, repositories, bootstrap
- services: assignment lifecycle, overlap guard, constraints, plans, slots, notifier
- engine: greedy auto-assignment of plan slots
- io: CSV import, planner matrix, XLSX/CSV export
- cli: command-line interface entrypoints
"""

__all__ = [
    "config",
    "errors",
    "timerange",
    "domain",
    "services",
    "engine",
    "io",
    "cli",
]
