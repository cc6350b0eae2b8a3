"""
字段填写协议。

单个输入框的状态机：Idle → Focused → Cleared → Typed → Committed
- Focused：滚动到视图后结构化点击；抛错时退回坐标点击，仍失败则 ActivationFailed
- Cleared：已有内容时全选 + Backspace，保证重复填写不会追加
- Typed：逐字输入
- Committed：Enter、等待、Tab、等待

复合字段（如 ["2024", "06"]）的后续部分不再重新定位，直接从上一次 Tab 落下的焦点继续。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .dom_driver import select_all_modifier
from .errors import ActivationFailed, NotVisible, ResolverError
from .geometry import bounding_box, describe
from .proximity import find_dropdown_option, find_input_by_label
from .records import FieldSpec
from .settings import ResolverSettings

LogFn = Callable[[str, str], None]


def _noop_log(msg: str, level: str = "info") -> None:
    return None


class FillState(str, Enum):
    IDLE = "idle"
    FOCUSED = "focused"
    CLEARED = "cleared"
    TYPED = "typed"
    COMMITTED = "committed"


@dataclass
class FillOutcome:
    value: str
    state: FillState = FillState.IDLE
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == FillState.COMMITTED and self.error is None


@dataclass
class FieldResult:
    label: str
    matched_label: Optional[str] = None
    via: Optional[str] = None
    parts: list[FillOutcome] = field(default_factory=list)
    expected_parts: int = 1
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and len(self.parts) == self.expected_parts
            and all(p.ok for p in self.parts)
        )


def activate(
    driver,
    node,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> None:
    """把节点带进视图并点击获取焦点；结构化点击失败时改用坐标点击。"""
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    box = bounding_box(driver, node)
    if box is None:
        raise NotVisible(describe(driver, node), "node has no bounding box")
    try:
        driver.scroll_into_view(node)
        driver.wait(settings.settle_ms // 2)
        driver.click_node(node)
        return
    except Exception as e:
        log(f"[填写字段] 无法滚动或点击节点 ({describe(driver, node)})：{e}", "warn")

    # 滚动可能已经生效，重新取一次坐标
    box = bounding_box(driver, node) or box
    try:
        driver.mouse_move(box.center_x, box.center_y)
        driver.wait(settings.settle_ms // 2)
        driver.mouse_click(box.center_x, box.center_y)
        log("[填写字段] 已使用鼠标坐标点击节点。", "info")
    except Exception as e:
        raise ActivationFailed(describe(driver, node), str(e)) from e


def clear_value(
    driver,
    node,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> bool:
    """已有内容时全选删除，返回是否执行了清空。"""
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    try:
        current = driver.value(node)
    except Exception:
        current = ""
    if not current:
        return False
    modifier = select_all_modifier()
    driver.key_down(modifier)
    driver.press("KeyA")
    driver.key_up(modifier)
    driver.wait(settings.settle_ms // 2)
    driver.press("Backspace")
    driver.wait(settings.settle_ms)
    log("[填写字段] 已清空现有内容。", "info")
    return True


def commit(driver, *, settings: Optional[ResolverSettings] = None) -> None:
    settings = settings or ResolverSettings()
    driver.press("Enter")
    driver.wait(settings.settle_ms)
    driver.press("Tab")
    driver.wait(settings.settle_ms)


def fill_node(
    driver,
    node,
    value: str,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> FillOutcome:
    """对单个已定位的输入节点跑完整状态机，失败时记录停在哪个状态。"""
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    outcome = FillOutcome(value=value)
    path = describe(driver, node)
    log(f"[填写字段] 正在填写输入框：{path}，值：\"{value}\"", "info")

    try:
        activate(driver, node, settings=settings, log_fn=log)
        outcome.state = FillState.FOCUSED
        driver.wait(settings.settle_ms)

        clear_value(driver, node, settings=settings, log_fn=log)
        outcome.state = FillState.CLEARED

        driver.type_text(value)
        outcome.state = FillState.TYPED
        log(f"[填写字段] 已输入新内容：\"{value}\"。", "info")
        driver.wait(settings.settle_ms)

        commit(driver, settings=settings)
        outcome.state = FillState.COMMITTED
    except ResolverError as e:
        outcome.error = f"{type(e).__name__}: {e}"
        log(f"[填写字段] 输入框 {path} 激活失败：{e}", "warn")
    except Exception as e:
        outcome.error = str(e)
        log(f"[填写字段] 输入框 {path} 在 {outcome.state.value} 阶段失败：{e}", "warn")
    return outcome


def select_dropdown_option(
    driver,
    node,
    option_text: str,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> FillOutcome:
    """
    选择下拉选项：原生 <select> 直接按 label 选择；
    否则点开控件、定位选项、坐标点击后按 Enter 收起。
    """
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    outcome = FillOutcome(value=option_text)
    path = describe(driver, node)
    log(f"[下拉选择] 尝试在下拉框 {path} 中选择选项：\"{option_text}\"", "info")

    try:
        is_native = driver.tag(node) == "select"
    except Exception:
        is_native = False
    if is_native:
        try:
            driver.select_native(node, option_text)
            driver.wait(settings.settle_ms)
            outcome.state = FillState.COMMITTED
            log(f"[下拉选择] 通过原生 select 选择：\"{option_text}\"", "info")
            return outcome
        except Exception as e:
            log(f"[下拉选择] 原生 select 失败，尝试模拟点击：{e}", "warn")

    try:
        activate(driver, node, settings=settings, log_fn=log)
        outcome.state = FillState.FOCUSED
        driver.wait(settings.settle_ms)

        option = find_dropdown_option(driver, option_text, settings=settings, log_fn=log)
        try:
            driver.scroll_into_view(option.node)
        except Exception:
            pass
        box = bounding_box(driver, option.node) or option.box
        driver.mouse_click(box.center_x, box.center_y)
        outcome.state = FillState.TYPED
        driver.wait(settings.settle_ms // 2)

        driver.press("Enter")
        driver.wait(settings.settle_ms // 2)
        outcome.state = FillState.COMMITTED
        log(f"[下拉选择] 成功通过模拟点击选择：\"{option_text}\"", "info")
    except ResolverError as e:
        outcome.error = f"{type(e).__name__}: {e}"
    except Exception as e:
        outcome.error = str(e)
        log(f"[下拉选择] 选择下拉框选项时发生错误：{e}", "error")
    return outcome


def fill_field(
    driver,
    spec: FieldSpec,
    *,
    container: Any = None,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> FieldResult:
    """按标签依次尝试定位（先命中者胜），再按值逐段填写。"""
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    values = spec.values
    result = FieldResult(label=spec.display_label, expected_parts=len(values))
    scope_hint = "（在指定容器内）" if container is not None else ""
    log(f"[字段填写] 尝试填写标签为：\"{spec.display_label}\" 的字段{scope_hint}...", "info")

    match = None
    for label in spec.label_texts:
        try:
            match = find_input_by_label(
                driver, label, container=container, settings=settings, log_fn=log
            )
        except ResolverError:
            continue
        except Exception as e:
            log(f"[字段填写] 查找标签 \"{label}\" 时出错，尝试下一个标签：{e}", "warn")
            continue
        result.matched_label = label
        result.via = match.via
        break

    if match is None:
        result.error = "not_found"
        log(f"[字段填写] 未找到任何符合提供标签的输入框：\"{spec.display_label}\"，跳过此字段。", "warn")
        return result

    if spec.control == "select":
        result.parts.append(
            select_dropdown_option(
                driver, match.node, values[0], settings=settings, log_fn=log
            )
        )
        return result

    node = match.node
    for index, value in enumerate(values):
        if index > 0:
            # Tab 已把焦点移到相邻的下一个输入框
            node = driver.active_element()
            if node is None:
                result.error = "focus_lost"
                log(f"[字段填写] \"{result.matched_label}\" 第 {index + 1} 部分没有可用焦点。", "warn")
                break
        log(
            f"[字段填写] 正在填充 \"{result.matched_label}\" (部分 {index + 1}/{len(values)})，值为：\"{value}\"",
            "info",
        )
        outcome = fill_node(driver, node, value, settings=settings, log_fn=log)
        result.parts.append(outcome)
        if not outcome.ok:
            log(f"[字段填写] 未能成功填写 \"{result.matched_label}\" 的第 {index + 1} 部分。", "warn")
            break

    if result.ok and result.expected_parts > 1:
        log(f"[字段填写] 成功填写复合字段 \"{result.matched_label}\"。", "info")
    return result
