"""
候选节点收集。

所有集合按文档顺序返回（逗号选择器由 querySelectorAll 保证去重与顺序），
不含相关性排序；排序交给 proximity。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .geometry import Box, bounding_box, in_viewport
from .settings import ResolverSettings

CLICKABLE_SELECTOR = (
    'button, a, [role="button"], input[type="button"], input[type="submit"], '
    '[class*="button"], [class*="btn"]'
)
TITLE_SELECTOR = "h1, h2, h3, h4, h5, h6, div, span, p"
LABEL_SELECTOR = "label, div, span, p, h1, h2, h3, h4, h5, h6"
INPUT_SELECTOR = 'input:not([type="hidden"]), textarea, select'
EDITABLE_SELECTOR = 'textarea, input[type="text"]'
OPTION_SELECTOR = (
    'li[role="option"], div[role="option"], .el-select-dropdown__item, '
    '.ant-select-item-option, [class*="option"], li'
)
CHECKABLE_TEXT_SELECTOR = "label, span, div, p"
CHECK_INPUT_SELECTOR = 'input[type="checkbox"], input[type="radio"]'


@dataclass
class Candidate:
    node: Any
    box: Box
    text: str = ""


def _norm(text: str | None) -> str:
    return (text or "").strip()


def collect_visible(driver, selector: str, *, root: Any = None) -> list[Candidate]:
    """selector 命中且包围盒非退化的节点。"""
    out: list[Candidate] = []
    for node in driver.query_all(selector, root):
        box = bounding_box(driver, node)
        if box is None:
            continue
        out.append(Candidate(node=node, box=box))
    return out


def text_matches(text: str, query: str, slack: int) -> bool:
    """包含查询文本，且整体长度不超过 len(query) + slack（排除大段无关文本）。"""
    return bool(query) and query in text and len(_norm(text)) <= len(query) + slack


def collect_text_matches(
    driver,
    query: str,
    selector: str,
    *,
    slack: int,
    root: Any = None,
) -> list[Candidate]:
    out: list[Candidate] = []
    for node in driver.query_all(selector, root):
        try:
            text = driver.text(node)
        except Exception:
            continue
        if not text_matches(text, query, slack):
            continue
        box = bounding_box(driver, node)
        if box is None:
            continue
        out.append(Candidate(node=node, box=box, text=_norm(text)))
    return out


def collect_keyword_candidates(
    driver,
    keywords: list[str],
    settings: ResolverSettings,
    *,
    root: Any = None,
) -> list[Candidate]:
    """
    可点击且文本含任一关键词的节点：
    - 未禁用
    - 文本长度 < keyword_text_max（排除包着大段文本的容器）
    - 宽高都小于视口的 viewport_fraction（排除整页遮罩误命中）
    """
    lowered = [k.lower() for k in keywords if k]
    if not lowered:
        return []
    vw, vh = driver.viewport()
    out: list[Candidate] = []
    for node in driver.query_all(CLICKABLE_SELECTOR, root):
        try:
            text = driver.text(node)
        except Exception:
            continue
        if not any(k in text.lower() for k in lowered):
            continue
        if len(text) >= settings.keyword_text_max:
            continue
        box = bounding_box(driver, node)
        if box is None:
            continue
        if (
            box.width >= vw * settings.viewport_fraction
            or box.height >= vh * settings.viewport_fraction
        ):
            continue
        try:
            if driver.is_disabled(node):
                continue
        except Exception:
            continue
        out.append(Candidate(node=node, box=box, text=_norm(text)))
    return out


def collect_option_candidates(
    driver,
    option_text: str,
    settings: ResolverSettings,
) -> list[Candidate]:
    """展开后的下拉选项：文本贴近目标、并且落在视口内。"""
    viewport = driver.viewport()
    out: list[Candidate] = []
    for node in driver.query_all(OPTION_SELECTOR):
        try:
            text = _norm(driver.text(node))
        except Exception:
            continue
        if not text_matches(text, option_text, settings.option_text_slack):
            continue
        box = bounding_box(driver, node)
        if box is None or not in_viewport(box, viewport):
            continue
        out.append(Candidate(node=node, box=box, text=text))
    return out


def first_with_placeholder(
    driver,
    query: str,
    *,
    root: Any = None,
) -> Optional[Candidate]:
    """placeholder 含查询文本（忽略大小写）的第一个可见输入框。"""
    wanted = query.lower()
    for candidate in collect_visible(driver, INPUT_SELECTOR, root=root):
        try:
            placeholder = driver.attribute(candidate.node, "placeholder") or ""
        except Exception:
            continue
        if wanted and wanted in placeholder.lower():
            candidate.text = placeholder
            return candidate
    return None
