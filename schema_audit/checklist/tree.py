"""Check-tree assembly and ordering.

Nodes arrive as a flat list with parent links.  :func:`build_tree`
attaches each node to its parent; :func:`iter_tree_order` walks the result
depth-first, children ordered by ``sort_order`` then id.  A node whose
parent is not in the list is dropped along with its subtree, so a broken
or cyclic parent chain can never make the walk loop.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from schema_audit.models.node import CheckNode

logger = logging.getLogger(__name__)


@dataclass
class TreeNode:
    node: CheckNode
    children: list[TreeNode] = field(default_factory=list)


def _order_key(tree_node: TreeNode) -> tuple[int, str]:
    return tree_node.node.sort_order, tree_node.node.id


def build_tree(nodes: Iterable[CheckNode]) -> list[TreeNode]:
    """Return the root nodes, each with its children attached and sorted."""
    by_id: dict[str, TreeNode] = {}
    for node in nodes:
        by_id[node.id] = TreeNode(node=node)

    roots: list[TreeNode] = []
    orphans = 0
    for tree_node in by_id.values():
        parent_id = tree_node.node.parent_id
        if parent_id is None:
            roots.append(tree_node)
        elif parent_id in by_id and parent_id != tree_node.node.id:
            by_id[parent_id].children.append(tree_node)
        else:
            orphans += 1
    if orphans:
        logger.warning("Ignoring %d check node(s) whose parent is unknown", orphans)

    for tree_node in by_id.values():
        tree_node.children.sort(key=_order_key)
    roots.sort(key=_order_key)
    return roots


def iter_tree_order(roots: Iterable[TreeNode]) -> Iterator[CheckNode]:
    """Yield nodes depth-first (pre-order), visiting each node at most once."""
    seen: set[str] = set()
    stack = list(reversed(list(roots)))
    while stack:
        current = stack.pop()
        if current.node.id in seen:
            continue
        seen.add(current.node.id)
        yield current.node
        stack.extend(reversed(current.children))
