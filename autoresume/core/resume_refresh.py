"""
简历刷新流程：进入在线简历编辑页，对一段文本做无害改动（切换结尾标点）后重新保存，
让简历在招聘方列表里保持“最近更新”。

步骤：
1. 点“修改申请/编辑”进入编辑页；URL 没变则悬停用户栏，点“我的简历”
2. 再点一次“修改申请/编辑”（部分页面需要二次确认）
3. 找第一个内容足够长的文本框，切换结尾标点
4. 勾选协议类复选框
5. 按倒序尝试点击保存类按钮（精确文本）
6. 点击确认对话框
7. URL 变化即视为保存成功；回到原页面
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .candidates import (
    CHECK_INPUT_SELECTOR,
    CHECKABLE_TEXT_SELECTOR,
    EDITABLE_SELECTOR,
    collect_visible,
)
from .field_fill import clear_value
from .geometry import bounding_box, describe
from .settings import ResolverSettings

LogFn = Callable[[str, str], None]

EDIT_KEYWORDS = ["修改申请", "编辑"]
USER_BAR_KEYWORDS = ["头像", "用户", "+86", "个人中心"]
MY_RESUME_KEYWORDS = ["我的简历"]
AGREEMENT_KEYWORDS = ["确认", "同步更新在线简历", "我已阅读并同意", "隐私协议", "隐私政策说明"]
SAVE_KEYWORDS = ["预览并提交", "保存", "提交", "投递简历"]
CONFIRM_KEYWORDS = ["确认提交", "确定", "提交"]

HOVER_SETTLE_MS = 1500
STEP_PAUSE_MS = 1500
EDIT_PAUSE_MS = 2000


def _noop_log(msg: str, level: str = "info") -> None:
    return None


@dataclass
class RefreshOutcome:
    original_url: str
    entered_editor: bool = False
    edited: bool = False
    saved: bool = False
    saved_url: Optional[str] = None
    saved_at: Optional[datetime] = None
    error: Optional[str] = None


def modify_text(text: str) -> str:
    """切换结尾标点：“，”↔“。”，否则追加“。”。"""
    if text.endswith("，"):
        return text[:-1] + "。"
    if text.endswith("。"):
        return text[:-1] + "，"
    return text + "。"


def click_keywords(
    driver,
    keywords: list[str],
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
    exact: bool = False,
) -> Optional[str]:
    """按顺序找第一个自身文本含关键词的节点并坐标点击，返回命中的关键词。"""
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    for keyword in keywords:
        try:
            node = driver.query_text(keyword, exact=exact)
            if node is None:
                log(f"[警告] 未找到关键词 {keyword}", "info")
                continue
            if driver.is_disabled(node):
                log(f"[跳过] \"{keyword}\" 被禁用，无法点击", "info")
                continue
            box = bounding_box(driver, node)
            if box is None:
                log(f"[失败] 找到 \"{keyword}\" 元素但无法点击（无 boundingBox）", "warn")
                continue
            driver.mouse_click(box.center_x, box.center_y)
            log(f"[点击关键词] {keyword}", "info")
            driver.wait(settings.click_settle_ms)
            return keyword
        except Exception as e:
            log(f"[错误] 查找关键词 \"{keyword}\" 时失败: {e}", "error")
    return None


def click_last_keyword(
    driver,
    keywords: list[str],
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> Optional[str]:
    """倒序尝试精确文本匹配：列表靠后的按钮（如“投递简历”）优先。"""
    return click_keywords(
        driver,
        list(reversed(keywords)),
        settings=settings,
        log_fn=log_fn,
        exact=True,
    )


def hover_user_bar(
    driver,
    keywords: Optional[list[str]] = None,
    *,
    log_fn: Optional[LogFn] = None,
) -> bool:
    log = log_fn or _noop_log
    for keyword in keywords or USER_BAR_KEYWORDS:
        try:
            node = driver.query_text(keyword)
            box = bounding_box(driver, node) if node is not None else None
            if box is None:
                log(f"[警告] 未找到可悬停的关键词 {keyword}", "info")
                continue
            driver.mouse_move(box.center_x, box.center_y)
            log(f"[悬停关键词] {keyword}", "info")
            driver.wait(HOVER_SETTLE_MS)
            return True
        except Exception as e:
            log(f"[错误] 悬停关键词 \"{keyword}\" 时失败: {e}", "error")
    return False


def edit_first_text_area(
    driver,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> bool:
    """第一个内容长度达到 edit_min_length 的可见文本框：切换结尾标点后离开。"""
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    candidates = collect_visible(driver, EDITABLE_SELECTOR)
    log(f"[调试] 找到 {len(candidates)} 个可见文本框", "info")
    for candidate in candidates:
        try:
            value = driver.value(candidate.node)
        except Exception:
            continue
        if len(value) < settings.edit_min_length:
            continue
        new_value = modify_text(value)
        log(f"[调试] 编辑 {describe(driver, candidate.node)}：\"{value}\" → \"{new_value}\"", "info")
        try:
            driver.click_node(candidate.node)
            driver.wait(settings.settle_ms // 2)
            clear_value(driver, candidate.node, settings=settings, log_fn=log)
            driver.type_text(new_value)
            driver.wait(settings.settle_ms)
            driver.press("Tab")
        except Exception as e:
            log(f"[错误] 编辑文本框失败: {e}", "error")
            return False
        return True
    log("[警告] 未找到合适的文本框进行编辑", "warn")
    return False


def tick_agreements(
    driver,
    keywords: Optional[list[str]] = None,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> list[str]:
    """勾选短文本容器里与关键词对应的复选框/单选框，返回处理过的关键词。"""
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    ticked: list[str] = []
    containers = driver.query_all(CHECKABLE_TEXT_SELECTOR)
    for keyword in keywords or AGREEMENT_KEYWORDS:
        matched = False
        for node in containers:
            try:
                text = driver.text(node)
            except Exception:
                continue
            if not text or len(text) > settings.checkable_text_max or keyword not in text:
                continue
            try:
                inputs = driver.query_all(CHECK_INPUT_SELECTOR, node)
                if inputs:
                    if driver.is_checked(inputs[0]):
                        log(f"[跳过] \"{keyword}\" 已经勾选，无需重复点击", "info")
                    else:
                        driver.click_node(inputs[0])
                        log(f"[点击] 勾选 \"{keyword}\" 成功", "info")
                    matched = True
                elif bounding_box(driver, node) is not None:
                    driver.click_node(node)
                    log(f"[点击] 未找到 input，直接点击元素本身: \"{keyword}\"", "info")
                    matched = True
            except Exception as e:
                log(f"[错误] 勾选 \"{keyword}\" 失败: {e}", "warn")
                continue
            if matched:
                break
        if matched:
            ticked.append(keyword)
        else:
            log(f"[警告] 未找到与 \"{keyword}\" 匹配的可点击项", "info")
        driver.wait(settings.settle_ms)
    return ticked


def refresh_resume(
    driver,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> RefreshOutcome:
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    try:
        driver.bring_to_front()
    except Exception:
        pass
    original_url = driver.url()
    outcome = RefreshOutcome(original_url=original_url)
    log(f"开始编辑简历... 当前页面：{original_url}", "info")

    click_keywords(driver, EDIT_KEYWORDS, settings=settings, log_fn=log)
    if driver.url() == original_url:
        log("[切换方案] 尝试进入个人简历页...", "info")
        hover_user_bar(driver, log_fn=log)
        click_keywords(driver, MY_RESUME_KEYWORDS, settings=settings, log_fn=log)
        if driver.url() == original_url:
            outcome.error = "editor_not_reached"
            log("[失败] 无法进入简历编辑页面，流程中止", "error")
            return outcome
    outcome.entered_editor = True

    driver.wait(STEP_PAUSE_MS)
    click_keywords(driver, EDIT_KEYWORDS, settings=settings, log_fn=log)

    driver.wait(EDIT_PAUSE_MS)
    outcome.edited = edit_first_text_area(driver, settings=settings, log_fn=log)
    if not outcome.edited:
        log("[警告] 没有找到文本框或未进行修改", "warn")

    driver.wait(STEP_PAUSE_MS)
    tick_agreements(driver, settings=settings, log_fn=log)

    url_before_submit = driver.url()
    driver.wait(STEP_PAUSE_MS)
    if click_last_keyword(driver, SAVE_KEYWORDS, settings=settings, log_fn=log) is None:
        outcome.error = "save_not_found"
        log("[失败] 未能保存简历", "error")
        return outcome

    driver.wait(STEP_PAUSE_MS)
    click_keywords(driver, CONFIRM_KEYWORDS, settings=settings, log_fn=log)

    driver.wait(EDIT_PAUSE_MS)
    url_after_submit = driver.url()
    if url_after_submit != url_before_submit:
        outcome.saved = True
        outcome.saved_url = url_after_submit
        outcome.saved_at = datetime.now()
        log(f"[成功] 简历已保存并跳转成功 @ {outcome.saved_at:%Y-%m-%d %H:%M:%S}", "info")

    driver.wait(settings.click_settle_ms)
    log(f"[信息] 返回原页面：{original_url}", "info")
    driver.accept_next_dialog(log_fn=log)
    try:
        driver.goto(original_url)
    except Exception as e:
        log(f"[警告] 返回原页面失败: {e}", "warn")
    log("[信息] 编辑简历流程结束", "info")
    return outcome
