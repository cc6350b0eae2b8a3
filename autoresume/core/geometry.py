"""
几何与拓扑工具。

职责：
- 节点包围盒（唯一的可见性门槛：宽或高为 0 即视为不可见）
- 节点深度（不含 body/html）与最近公共祖先（LCA）
- 有界轮询等待节点可见
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import NotVisible

# 文档最外层容器：深度计算到这里为止
ROOT_TAGS = frozenset({"body", "html"})


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    @property
    def area(self) -> float:
        return self.width * self.height

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["Box"]:
        """兼容 Playwright 的 dict 形式，宽高为 0 时返回 None。"""
        if raw is None:
            return None
        if isinstance(raw, Box):
            box = raw
        elif isinstance(raw, dict):
            try:
                box = cls(
                    x=float(raw.get("x", 0)),
                    y=float(raw.get("y", 0)),
                    width=float(raw.get("width", 0)),
                    height=float(raw.get("height", 0)),
                )
            except (TypeError, ValueError):
                return None
        else:
            return None
        if box.width <= 0 or box.height <= 0:
            return None
        return box


def bounding_box(driver, node) -> Optional[Box]:
    if node is None:
        return None
    try:
        return Box.from_raw(driver.bounding_box(node))
    except Exception:
        # 节点已从文档移除时驱动会抛错，等同于不可见
        return None


def center_distance(a: Box, b: Box) -> float:
    return math.hypot(a.center_x - b.center_x, a.center_y - b.center_y)


def in_viewport(box: Box, viewport: tuple[float, float]) -> bool:
    width, height = viewport
    return box.y >= 0 and box.y <= height and box.x <= width and box.right >= 0


def depth(driver, node) -> int:
    """从 node 向上数祖先层数，到 body/html 为止（不含）。"""
    if node is None:
        return 0
    count = 0
    current = node
    while True:
        parent = driver.parent(current)
        if parent is None or driver.tag(parent) in ROOT_TAGS:
            break
        current = parent
        count += 1
    return count


def ancestor_path(driver, node) -> list:
    """根到节点的路径（含节点本身）。"""
    path = []
    current = node
    while current is not None:
        path.append(current)
        current = driver.parent(current)
    path.reverse()
    return path


def lowest_common_ancestor(driver, a, b):
    if a is None or b is None:
        return None
    path_a = ancestor_path(driver, a)
    path_b = ancestor_path(driver, b)
    lca = None
    for left, right in zip(path_a, path_b):
        if not driver.same_node(left, right):
            break
        lca = left
    return lca


def lca_depth(driver, a, b) -> int:
    lca = lowest_common_ancestor(driver, a, b)
    return depth(driver, lca) if lca is not None else 0


def describe(driver, node) -> str:
    """节点的近似 XPath，仅用于诊断日志。"""
    if node is None:
        return "N/A"
    try:
        return driver.node_path(node) or "N/A"
    except Exception as e:
        return f"<path unavailable: {e}>"


def wait_for_visible(
    driver,
    locate: Callable[[], Any],
    *,
    query: str,
    timeout_ms: int,
    interval_ms: int,
):
    """
    轮询 locate() 直到返回一个有包围盒的节点；超时抛 NotVisible。
    locate 每轮重新查询，不复用旧句柄。
    """
    step = max(int(interval_ms), 1)
    waited = 0
    while True:
        node = locate()
        if node is not None and bounding_box(driver, node) is not None:
            return node
        if waited >= timeout_ms:
            raise NotVisible(query, f"'{query}' not visible within {timeout_ms}ms")
        driver.wait(step)
        waited += step
