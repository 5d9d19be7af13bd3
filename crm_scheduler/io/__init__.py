"""I/O utilities: CSV import, planner matrix and spreadsheet export."""

from .export_matrix import export_planner_matrix
from .import_csv import import_orgs_csv, import_workers_csv, import_workplaces_csv
from .planner_matrix import BY_WORKERS, BY_WORKPLACES, PlannerMatrixBuilder

__all__ = [
    "export_planner_matrix",
    "import_orgs_csv",
    "import_workers_csv",
    "import_workplaces_csv",
    "BY_WORKERS",
    "BY_WORKPLACES",
    "PlannerMatrixBuilder",
]
