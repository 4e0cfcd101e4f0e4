from dataclasses import dataclass, field
from typing import Dict, List, Optional

from schemas import Category

MAX_DEPTH = 2


@dataclass
class CategoryNode:
    category: Category
    children: List["CategoryNode"] = field(default_factory=list)
    level: int = 0

    def as_dict(self) -> Dict:
        data = self.category.model_dump(by_alias=False)
        data["level"] = self.level
        data["children"] = [child.as_dict() for child in self.children]
        return data


def _ordered(categories: List[Category]) -> List[Category]:
    return sorted(categories, key=lambda c: (c.sort_order, c.name.lower()))


def build_tree(categories: List[Category], parent: Optional[str] = None, level: int = 0) -> List[CategoryNode]:
    """Roots are categories without a parent; children hang off their parent's id.

    Categories whose parent is not in the list are never reached.
    """
    if level >= MAX_DEPTH:
        return []
    if parent is None:
        matches = [c for c in categories if not c.parent_category]
    else:
        matches = [c for c in categories if c.parent_category == parent]
    return [
        CategoryNode(c, build_tree(categories, c.id, level + 1), level)
        for c in _ordered(matches)
    ]


def flatten(nodes: List[CategoryNode]) -> List[CategoryNode]:
    """Depth-first order, the way the tree is rendered as an indented list."""
    rows: List[CategoryNode] = []
    for node in nodes:
        rows.append(node)
        rows.extend(flatten(node.children))
    return rows


def root_options(categories: List[Category], exclude: Optional[str] = None) -> List[Category]:
    """Categories that may be picked as a parent: roots only, one level deep."""
    return [c for c in _ordered(categories) if not c.parent_category and c.id != exclude]
