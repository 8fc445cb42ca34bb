"""Audit run orchestration: check tree, dispatcher and rollup."""

from schema_audit.checklist.dispatcher import CheckDispatcher, run_checks
from schema_audit.checklist.rollup import RollupAggregator, compute_rollup
from schema_audit.checklist.tree import TreeNode, build_tree, iter_tree_order

__all__ = [
    "CheckDispatcher",
    "RollupAggregator",
    "TreeNode",
    "build_tree",
    "compute_rollup",
    "iter_tree_order",
    "run_checks",
]
