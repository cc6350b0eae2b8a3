"""
文档驱动：把 Playwright 同步 Page 包装成定位器需要的最小能力集合。

定位器只通过这里的方法接触浏览器：
- 查询：query_all / query_text
- 文本与几何：text / value / bounding_box / viewport
- 关系：parent / same_node / contains / tag
- 属性：attribute / is_disabled / is_checked
- 输入模拟：click_node / mouse_click / mouse_move / key_down / key_up / press / type_text
- 滚动、焦点、计时、诊断路径，以及编排层需要的导航

节点句柄（ElementHandle）随页面变化随时失效，调用方每一步都应重新查询。
"""

from __future__ import annotations

import sys
from typing import Optional

from playwright.sync_api import ElementHandle, Page

DEFAULT_VIEWPORT = (1920, 1080)

_XPATH_JS = """
(el) => {
  if (!el || typeof el.tagName !== "string") return "";
  let xpath = "";
  for (; el && el.nodeType === 1; el = el.parentNode) {
    const id = el.hasAttribute("id") ? `[@id="${el.id}"]` : "";
    const tagName = el.tagName.toLowerCase();
    let index = 1;
    if (!id && el.parentNode && el.parentNode.children) {
      const siblings = Array.from(el.parentNode.children).filter(
        (child) => child.tagName.toLowerCase() === tagName
      );
      if (siblings.length > 1) index = siblings.indexOf(el) + 1;
    }
    const position = id ? "" : index > 1 ? `[${index}]` : "";
    xpath = `/${tagName}${id}${position}` + xpath;
    if (id) break;
  }
  return xpath;
}
"""


def select_all_modifier() -> str:
    return "Meta" if sys.platform == "darwin" else "Control"


def xpath_literal(value: str) -> str:
    """把任意字符串转成 XPath 字面量（处理单双引号混用）。"""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{p}'" for p in parts) + ")"


class PlaywrightDriver:
    def __init__(self, page: Page) -> None:
        self.page = page

    # --- 查询 ---
    def query_all(self, selector: str, root: Optional[ElementHandle] = None) -> list:
        scope = root or self.page
        return list(scope.query_selector_all(selector))

    def query_text(self, text: str, *, exact: bool = False) -> Optional[ElementHandle]:
        """按自身文本查找第一个节点（文档顺序）。"""
        literal = xpath_literal(text)
        if exact:
            expr = f"xpath=//*[text() = {literal}]"
        else:
            expr = f"xpath=//*[contains(text(), {literal})]"
        return self.page.query_selector(expr)

    # --- 文本与几何 ---
    def text(self, node: ElementHandle) -> str:
        return node.evaluate("(el) => el.innerText || el.textContent || ''") or ""

    def value(self, node: ElementHandle) -> str:
        return (
            node.evaluate("(el) => el.value || el.innerText || el.textContent || ''")
            or ""
        )

    def bounding_box(self, node: ElementHandle) -> Optional[dict]:
        return node.bounding_box()

    def viewport(self) -> tuple[float, float]:
        size = self.page.viewport_size
        if size:
            return float(size["width"]), float(size["height"])
        try:
            raw = self.page.evaluate(
                "() => [window.innerWidth, window.innerHeight]"
            )
            return float(raw[0]), float(raw[1])
        except Exception:
            return DEFAULT_VIEWPORT

    # --- 关系 ---
    def parent(self, node: ElementHandle) -> Optional[ElementHandle]:
        handle = node.evaluate_handle("(el) => el.parentElement")
        return handle.as_element()

    def same_node(self, a: ElementHandle, b: ElementHandle) -> bool:
        return bool(a.evaluate("(a, b) => a === b", b))

    def contains(self, container: ElementHandle, node: ElementHandle) -> bool:
        return bool(container.evaluate("(c, n) => c.contains(n)", node))

    def tag(self, node: ElementHandle) -> str:
        return node.evaluate("(el) => (el.tagName || '').toLowerCase()") or ""

    # --- 属性 ---
    def attribute(self, node: ElementHandle, name: str) -> Optional[str]:
        return node.get_attribute(name)

    def is_disabled(self, node: ElementHandle) -> bool:
        return bool(
            node.evaluate(
                "(el) => !!el.disabled || el.getAttribute('aria-disabled') === 'true'"
            )
        )

    def is_checked(self, node: ElementHandle) -> bool:
        return bool(node.evaluate("(el) => !!el.checked"))

    # --- 输入模拟 ---
    def click_node(self, node: ElementHandle) -> None:
        node.click(timeout=2000)

    def mouse_click(self, x: float, y: float) -> None:
        self.page.mouse.click(x, y)

    def mouse_move(self, x: float, y: float) -> None:
        self.page.mouse.move(x, y)

    def key_down(self, key: str) -> None:
        self.page.keyboard.down(key)

    def key_up(self, key: str) -> None:
        self.page.keyboard.up(key)

    def press(self, key: str) -> None:
        self.page.keyboard.press(key)

    def type_text(self, text: str, *, delay_ms: int = 40) -> None:
        self.page.keyboard.type(text, delay=delay_ms)

    def select_native(self, node: ElementHandle, label: str) -> None:
        node.select_option(label=label, timeout=2000)

    # --- 滚动与焦点 ---
    def scroll_into_view(self, node: ElementHandle) -> None:
        node.scroll_into_view_if_needed(timeout=2000)

    def scroll_container(self, node: ElementHandle, fraction: float = 0.8) -> bool:
        """按可视高度的比例滚动容器，返回滚动位置是否变化。"""
        return bool(
            node.evaluate(
                """
                (el, fraction) => {
                  const before = el.scrollTop;
                  el.scrollTop += el.clientHeight * fraction;
                  return el.scrollTop !== before;
                }
                """,
                fraction,
            )
        )

    def active_element(self) -> Optional[ElementHandle]:
        handle = self.page.evaluate_handle(
            "() => { const el = document.activeElement; return el && el !== document.body ? el : null; }"
        )
        return handle.as_element()

    # --- 计时与诊断 ---
    def wait(self, ms: int) -> None:
        if ms > 0:
            self.page.wait_for_timeout(ms)

    def node_path(self, node: ElementHandle) -> str:
        return node.evaluate(_XPATH_JS) or ""

    # --- 导航（编排层使用）---
    def url(self) -> str:
        return self.page.url

    def goto(self, url: str) -> None:
        self.page.goto(url, wait_until="domcontentloaded", timeout=30000)

    def reload(self) -> None:
        self.page.reload(wait_until="domcontentloaded", timeout=30000)

    def go_back(self) -> None:
        self.page.go_back(wait_until="domcontentloaded", timeout=30000)

    def bring_to_front(self) -> None:
        self.page.bring_to_front()

    def accept_next_dialog(self, log_fn=None) -> None:
        """为下一次浏览器原生弹窗（如“未保存更改”）注册一次性自动确认。"""

        def _accept(dialog) -> None:
            if log_fn:
                log_fn(f"[浏览器弹窗] 类型: {dialog.type}，消息: {dialog.message}", "info")
            dialog.accept()

        self.page.once("dialog", _accept)
