"""
结构-邻近匹配器。

给定锚点（区块标题 / 字段标签）与一组候选节点，选出人类会认为“对应”的那个控件。
排序规则（严格优先级）：
1. 显式关联（<label for=X> ↔ id=X）直接胜出，跳过其余打分
2. LCA 深度越大越好；深度 <= min_ancestor_depth 的候选直接丢弃（多半是页面骨架误命中）
3. 中心点欧氏距离越小越好
4. x 越小越好（并列字段如“年/月”优先取第一个）

打分部分是纯函数（rank_key / pick_best），不依赖文档树即可单测。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from .candidates import (
    INPUT_SELECTOR,
    LABEL_SELECTOR,
    TITLE_SELECTOR,
    Candidate,
    collect_keyword_candidates,
    collect_option_candidates,
    collect_text_matches,
    collect_visible,
    first_with_placeholder,
)
from .errors import NotFound, NotVisible
from .geometry import (
    Box,
    bounding_box,
    center_distance,
    depth,
    describe,
    lowest_common_ancestor,
)
from .settings import ResolverSettings
from .trace import append_resolution_trace

LogFn = Callable[[str, str], None]


def _noop_log(msg: str, level: str = "info") -> None:
    return None


@dataclass(frozen=True)
class MatchResult:
    node: Any = field(compare=False)
    ancestor_depth: int
    distance: float
    x: float
    via: str = "structure"  # label_for | structure | placeholder
    anchor_text: str = ""

    def rank_key(self) -> tuple[float, float, float]:
        return (-self.ancestor_depth, self.distance, self.x)

    def score_text(self) -> str:
        return (
            f"LCA 深度: {self.ancestor_depth}, 距离: {self.distance:.2f}, "
            f"x: {self.x:.0f}, via: {self.via}"
        )


def pick_best(results: Iterable[MatchResult]) -> Optional[MatchResult]:
    """按 (-深度, 距离, x) 取最小；完全并列时保留先出现的（文档顺序）。"""
    best: Optional[MatchResult] = None
    for result in results:
        if best is None or result.rank_key() < best.rank_key():
            best = result
    return best


def button_exclusion(button: Box, title: Box, settings: ResolverSettings) -> Optional[str]:
    """按钮只应出现在标题同一行右侧或下方。"""
    if button.y < title.y - settings.button_above_tolerance:
        return "above_title"
    if (
        abs(button.y - title.y) < title.height * settings.button_band_factor
        and button.x < title.x
    ):
        return "left_of_title"
    return None


def input_excluded(input_box: Box, label_box: Box, settings: ResolverSettings) -> bool:
    """输入框底边明显高于标签顶边时排除（输入框应在标签右侧或下方）。"""
    return input_box.bottom < label_box.y - settings.input_above_tolerance


class _PathCache:
    """一次定位调用内缓存祖先路径，避免成对比较时重复向上遍历。"""

    def __init__(self, driver) -> None:
        self.driver = driver
        self._paths: dict[int, list] = {}

    def path(self, node) -> list:
        key = id(node)
        if key not in self._paths:
            path = []
            current = node
            while current is not None:
                path.append(current)
                current = self.driver.parent(current)
            path.reverse()
            self._paths[key] = path
        return self._paths[key]

    def lca_depth(self, a, b) -> int:
        lca = None
        for left, right in zip(self.path(a), self.path(b)):
            if not self.driver.same_node(left, right):
                break
            lca = left
        return depth(self.driver, lca) if lca is not None else 0


def find_section_title(
    driver,
    title_labels: list[str],
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> Candidate:
    """
    查找区块标题并滚动到视图。
    同一标题多处命中时取文本最紧凑的，再取面积最小的，最后按文档顺序。
    """
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    wanted = "\", \"".join(title_labels)
    log(f"[查找标题] 尝试找到标题：\"{wanted}\" ...", "info")
    for title in title_labels:
        matches = collect_text_matches(
            driver, title, TITLE_SELECTOR, slack=settings.label_text_slack
        )
        if not matches:
            continue
        best = min(matches, key=lambda c: (len(c.text), c.box.area))
        path = describe(driver, best.node)
        try:
            driver.scroll_into_view(best.node)
        except Exception as e:
            log(f"[查找标题] 滚动到标题失败（忽略）: {e}", "warn")
        driver.wait(settings.settle_ms)
        box = bounding_box(driver, best.node)
        if box is None:
            append_resolution_trace(
                kind="title", query=title, outcome="not_visible", data={"path": path}
            )
            raise NotVisible(title, f"title '{title}' lost geometry after scroll")
        log(f"[查找标题] 找到 \"{title}\" 标题：{path} (候选 {len(matches)} 个)", "info")
        append_resolution_trace(
            kind="title",
            query=title,
            outcome="matched",
            data={"path": path, "candidates": len(matches), "text": best.text},
        )
        return Candidate(node=best.node, box=box, text=best.text)

    query = "/".join(title_labels)
    log(f"[查找标题] 未找到任何符合标题：\"{query}\" 的清晰标题或其不可见。", "error")
    append_resolution_trace(kind="title", query=query, outcome="not_found", data={})
    raise NotFound(query, f"section title '{query}' not found")


def find_button_near(
    driver,
    anchor,
    keywords: list[str],
    *,
    scope: Any = None,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> MatchResult:
    """
    找与锚点结构最近的按钮（不点击）。
    传入 scope 时只在该容器内找，候选已被容器约束，不再按浅 LCA 丢弃。
    """
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    query = "/".join(keywords)
    anchor_path = describe(driver, anchor)
    anchor_box = bounding_box(driver, anchor)
    if anchor_box is None:
        log(f"[点击按钮] 锚点 {anchor_path} 无 boundingBox，无法计算距离和位置。", "error")
        raise NotVisible(query, "anchor has no bounding box")

    candidates = collect_keyword_candidates(driver, keywords, settings, root=scope)
    if not candidates:
        log(f"[点击按钮] 未找到任何可见的、符合条件的\"{query}\"按钮。", "error")
        append_resolution_trace(
            kind="button", query=query, outcome="not_found", data={"anchor": anchor_path}
        )
        raise NotFound(query, f"no clickable candidate for '{query}'")
    log(f"[点击按钮] 找到 {len(candidates)} 个可能的\"{query}\"按钮候选项。", "info")

    min_depth = -1 if scope is not None else settings.min_ancestor_depth
    paths = _PathCache(driver)
    results: list[MatchResult] = []
    rejected: dict[str, int] = {}
    for candidate in candidates:
        reason = button_exclusion(candidate.box, anchor_box, settings)
        if reason:
            rejected[reason] = rejected.get(reason, 0) + 1
            continue
        lca = paths.lca_depth(anchor, candidate.node)
        if lca <= min_depth:
            rejected["shallow_ancestor"] = rejected.get("shallow_ancestor", 0) + 1
            continue
        results.append(
            MatchResult(
                node=candidate.node,
                ancestor_depth=lca,
                distance=center_distance(candidate.box, anchor_box),
                x=candidate.box.x,
                anchor_text=candidate.text,
            )
        )

    best = pick_best(results)
    if best is None:
        log(f"[点击按钮] 未能找到合适的\"{query}\"按钮 (排除: {rejected})。", "error")
        append_resolution_trace(
            kind="button",
            query=query,
            outcome="not_found",
            data={"anchor": anchor_path, "rejected": rejected},
        )
        raise NotFound(query, f"every candidate for '{query}' was excluded")

    path = describe(driver, best.node)
    log(
        f"[点击按钮] 最佳按钮：\"{best.anchor_text[:50]}\" {path} ({best.score_text()})",
        "info",
    )
    append_resolution_trace(
        kind="button",
        query=query,
        outcome="matched",
        data={
            "anchor": anchor_path,
            "path": path,
            "ancestor_depth": best.ancestor_depth,
            "distance": round(best.distance, 2),
            "x": best.x,
            "scored": len(results),
            "rejected": rejected,
        },
    )
    return best


def _linked_input(driver, labels: list[Candidate], inputs: list[Candidate]):
    """<label for=X> 与 id=X 的输入框直接配对。"""
    ids: Optional[list[tuple[Candidate, str]]] = None
    for label in labels:
        try:
            if driver.tag(label.node) != "label":
                continue
            target = driver.attribute(label.node, "for")
        except Exception:
            continue
        if not target:
            continue
        if ids is None:
            ids = []
            for inp in inputs:
                try:
                    ids.append((inp, driver.attribute(inp.node, "id") or ""))
                except Exception:
                    continue
        for inp, input_id in ids:
            if input_id == target:
                return label, inp
    return None


def find_input_by_label(
    driver,
    label_text: str,
    *,
    container: Any = None,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> MatchResult:
    """
    查找与标签文本对应的输入框/文本域。
    无标签配对时退回 placeholder 匹配；仍失败则抛 NotFound，绝不替换成别的字段。
    """
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    scope_name = "容器内" if container is not None else "全页面"

    labels = collect_text_matches(
        driver,
        label_text,
        LABEL_SELECTOR,
        slack=settings.label_text_slack,
        root=container,
    )
    inputs = collect_visible(driver, INPUT_SELECTOR, root=container) if labels else []

    if labels and inputs:
        linked = _linked_input(driver, labels, inputs)
        if linked:
            label, inp = linked
            result = MatchResult(
                node=inp.node,
                ancestor_depth=0,
                distance=center_distance(inp.box, label.box),
                x=inp.box.x,
                via="label_for",
                anchor_text=label.text,
            )
            path = describe(driver, inp.node)
            log(f"[查找字段] 通过 label 'for' 属性匹配到 \"{label_text}\"：{path}", "info")
            append_resolution_trace(
                kind="input",
                query=label_text,
                outcome="matched",
                data={"path": path, "via": "label_for"},
            )
            return result

    paths = _PathCache(driver)
    results: list[MatchResult] = []
    for label in labels:
        for inp in inputs:
            if input_excluded(inp.box, label.box, settings):
                continue
            lca = paths.lca_depth(label.node, inp.node)
            if lca <= settings.min_ancestor_depth:
                continue
            results.append(
                MatchResult(
                    node=inp.node,
                    ancestor_depth=lca,
                    distance=center_distance(inp.box, label.box),
                    x=inp.box.x,
                    anchor_text=label.text,
                )
            )

    best = pick_best(results)
    if best is not None:
        path = describe(driver, best.node)
        log(f"[查找字段] 找到 \"{label_text}\" 关联输入框：{path} ({best.score_text()})", "info")
        append_resolution_trace(
            kind="input",
            query=label_text,
            outcome="matched",
            data={
                "path": path,
                "ancestor_depth": best.ancestor_depth,
                "distance": round(best.distance, 2),
                "x": best.x,
                "labels": len(labels),
                "inputs": len(inputs),
                "scored": len(results),
            },
        )
        return best

    log(
        f"[查找字段] 在{scope_name}未找到 \"{label_text}\" 的标签配对"
        f"（标签 {len(labels)} 个，输入框 {len(inputs)} 个），尝试通过 placeholder 查找...",
        "info",
    )
    hinted = first_with_placeholder(driver, label_text, root=container)
    if hinted is not None:
        path = describe(driver, hinted.node)
        log(f"[查找字段] 通过 placeholder 回退匹配到 \"{label_text}\"：{path}", "warn")
        append_resolution_trace(
            kind="input",
            query=label_text,
            outcome="fallback",
            data={"path": path, "via": "placeholder", "placeholder": hinted.text},
        )
        return MatchResult(
            node=hinted.node,
            ancestor_depth=0,
            distance=0.0,
            x=hinted.box.x,
            via="placeholder",
            anchor_text=hinted.text,
        )

    log(f"[查找字段] 未能在{scope_name}找到 \"{label_text}\" 关联的输入框。", "error")
    append_resolution_trace(
        kind="input",
        query=label_text,
        outcome="not_found",
        data={"labels": len(labels), "inputs": len(inputs)},
    )
    raise NotFound(label_text, f"no input resolved for '{label_text}'")


def find_dropdown_option(
    driver,
    option_text: str,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> Candidate:
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    options = collect_option_candidates(driver, option_text, settings)
    if not options:
        log(f"[下拉选择] 未能在展开的下拉选项中找到文本为 \"{option_text}\" 的选项。", "warn")
        append_resolution_trace(
            kind="option", query=option_text, outcome="not_found", data={}
        )
        raise NotFound(option_text, f"dropdown option '{option_text}' not found")
    best = options[0]
    path = describe(driver, best.node)
    log(f"[下拉选择] 找到选项 \"{option_text}\"：{path}（候选 {len(options)} 个）", "info")
    append_resolution_trace(
        kind="option",
        query=option_text,
        outcome="matched",
        data={"path": path, "text": best.text, "candidates": len(options)},
    )
    return best
