"""In-memory arena of categories addressed by id.

Every traversal over the hierarchy (cycle checks, tree building, breadcrumbs,
descendants) runs against one ``CategoryIndex`` loaded in a single query, so
parent and child links are plain dictionary lookups and each walk carries its
own visited set to stay finite on corrupted data.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

# null sort orders go after every numbered sibling
_UNSORTED = float("inf")


@dataclass
class CategoryNode:
    id: str
    name: str
    slug: str
    parent_id: Optional[str]
    sort_order: Optional[int]
    is_active: bool = True
    is_published: bool = True
    children: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row) -> "CategoryNode":
        return cls(
            id=row.id,
            name=row.name,
            slug=row.slug,
            parent_id=row.parent_id,
            sort_order=row.sort_order,
            is_active=bool(row.is_active),
            is_published=bool(row.is_published),
        )

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "parent_id": self.parent_id,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
        }


def sort_key(node: CategoryNode):
    order = node.sort_order if node.sort_order is not None else _UNSORTED
    return (order, (node.name or "").lower(), node.name or "")


class CategoryIndex:
    def __init__(self, nodes: Iterable[CategoryNode]):
        self.nodes: Dict[str, CategoryNode] = {}
        self.roots: List[str] = []
        # first pass: index every node
        for node in nodes:
            node.children = []
            self.nodes[node.id] = node
        # second pass: attach to parent, or to the root list
        for node in self.nodes.values():
            parent = self.nodes.get(node.parent_id) if node.parent_id else None
            if parent is not None:
                parent.children.append(node.id)
            elif node.parent_id is None:
                self.roots.append(node.id)
        for node in self.nodes.values():
            node.children.sort(key=lambda cid: sort_key(self.nodes[cid]))
        self.roots.sort(key=lambda cid: sort_key(self.nodes[cid]))

    @classmethod
    def from_rows(cls, rows) -> "CategoryIndex":
        return cls(CategoryNode.from_row(r) for r in rows)

    def __contains__(self, category_id) -> bool:
        return category_id in self.nodes

    def get(self, category_id: Optional[str]) -> Optional[CategoryNode]:
        return self.nodes.get(category_id) if category_id else None

    def is_circular(self, candidate_parent_id: Optional[str], node_id: Optional[str]) -> bool:
        """Would making ``candidate_parent_id`` the parent of ``node_id`` form a cycle?"""
        if not candidate_parent_id or not node_id:
            return False
        if candidate_parent_id == node_id:
            return True
        visited: Set[str] = set()
        current = candidate_parent_id
        while current and current not in visited:
            if current == node_id:
                return True
            visited.add(current)
            node = self.nodes.get(current)
            if node is None:
                break
            current = node.parent_id
        return False

    def path_to_root(self, category_id: str) -> List[CategoryNode]:
        """Nodes from the root down to ``category_id``; empty for unknown ids."""
        path: List[CategoryNode] = []
        visited: Set[str] = set()
        current = category_id
        while current and current not in visited:
            node = self.nodes.get(current)
            if node is None:
                break
            visited.add(current)
            path.insert(0, node)
            current = node.parent_id
        return path

    def descendants(self, category_id: str) -> List[CategoryNode]:
        """Breadth-first list of every node below ``category_id``."""
        result: List[CategoryNode] = []
        visited: Set[str] = {category_id}
        queue = deque([category_id])
        while queue:
            node = self.nodes.get(queue.popleft())
            if node is None:
                continue
            for child_id in node.children:
                if child_id in visited:
                    continue
                visited.add(child_id)
                result.append(self.nodes[child_id])
                queue.append(child_id)
        return result

    def siblings_of(self, category_id: str) -> List[CategoryNode]:
        node = self.nodes.get(category_id)
        if node is None:
            return []
        if node.parent_id and node.parent_id in self.nodes:
            ids = self.nodes[node.parent_id].children
        else:
            ids = self.roots
        return [self.nodes[i] for i in ids if i != category_id]

    def build_tree(self, root_ids: Optional[List[str]] = None, max_depth: Optional[int] = None) -> List[Dict]:
        def build(ids: List[str], depth: int, visited: Set[str]) -> List[Dict]:
            level = []
            for cid in ids:
                node = self.nodes[cid]
                item = node.to_dict()
                item["children"] = []
                if cid not in visited and (max_depth is None or depth + 1 < max_depth):
                    visited.add(cid)
                    item["children"] = build(node.children, depth + 1, visited)
                    visited.discard(cid)
                level.append(item)
            return level

        return build(self.roots if root_ids is None else root_ids, 0, set())
