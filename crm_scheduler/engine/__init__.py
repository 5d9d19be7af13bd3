"""Scheduling engine."""

from .auto_assign import AutoAssigner, AutoAssignRequest, rank_candidates

__all__ = [
    "AutoAssigner",
    "AutoAssignRequest",
    "rank_candidates",
]
