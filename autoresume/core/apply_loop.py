"""
职位卡片投递循环。

每一步（perform_application）只处理一张卡片，并返回给外层循环的指令：
- processed：处理了一张卡片（或滚动出了新卡片 / 列表暂缺需重试），继续
- no_more_cards：到底了，等待后从头再扫
- go_back：列表连续缺失，返回上一页
- refresh_page：连续出错，刷新页面

重试计数都放在 ApplyLoopState 里显式传递，不用模块级变量。
"""

from __future__ import annotations

import re
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

from .errors import NotVisible
from .geometry import wait_for_visible
from .settings import ApplyLoopSettings

LogFn = Callable[[str, str], None]
StepResult = Literal["processed", "no_more_cards", "go_back", "refresh_page"]

JOB_LIST_SELECTOR = "ul.rec-job-list"
CARD_SELECTOR = "div.card-area"
JOB_LINK_SELECTOR = 'a[href*="/job_detail/"]'
CHAT_BUTTON_SELECTOR = "a.op-btn.op-btn-chat"
STAY_BUTTON_SELECTOR = "a.default-btn.cancel-btn"
CLOSE_CHAT_SELECTOR = ".chat-dialog-close"
CLOSE_DETAIL_SELECTOR = ".detail-panel-close-btn"

JOB_ID_PATTERN = re.compile(r"/job_detail/([a-zA-Z0-9]+)\.html")

LIST_TIMEOUT_MS = 8000
CARD_TIMEOUT_MS = 1000
BUTTON_TIMEOUT_MS = 5000
CLOSE_TIMEOUT_MS = 1500
POLL_MS = 250
LIST_RETRY_WAIT_MS = 3000
SCROLL_SETTLE_MS = 3000


def _noop_log(msg: str, level: str = "info") -> None:
    return None


@dataclass
class CardSlot:
    id: str
    processed: bool = False


@dataclass
class ApplyLoopState:
    processed_ids: set[str] = field(default_factory=set)
    queue: list[CardSlot] = field(default_factory=list)
    index: int = 0
    missing_list_count: int = 0
    error_count: int = 0
    applied: int = 0
    attempted: int = 0

    def reset_queue(self) -> None:
        self.queue = []
        self.index = 0

    def reset_for_page(self) -> None:
        """返回/刷新页面后旧节点全部失效，从头发现卡片。"""
        self.reset_queue()
        self.error_count = 0


def decide_missing_list(missing_count: int, max_missing: int) -> Literal["retry", "go_back"]:
    return "go_back" if missing_count >= max_missing else "retry"


def decide_after_error(error_count: int, max_errors: int) -> Literal["processed", "refresh_page"]:
    return "refresh_page" if error_count >= max_errors else "processed"


def merge_visible_cards(
    visible_ids: list[str],
    queue: list[CardSlot],
    processed_ids: set[str],
) -> tuple[list[CardSlot], bool]:
    """
    按当前可见卡片重建队列：已处理的标记 processed，仍在队列中的保留原状态，
    其余作为新卡片加入。返回 (新队列, 是否发现新卡片)。
    """
    known = {slot.id: slot for slot in queue}
    merged: list[CardSlot] = []
    discovered = False
    for job_id in visible_ids:
        if job_id in processed_ids:
            merged.append(CardSlot(id=job_id, processed=True))
        elif job_id in known:
            merged.append(known[job_id])
        else:
            merged.append(CardSlot(id=job_id))
            discovered = True
    return merged, discovered


def job_id_from_card(driver, card) -> str:
    """职位 ID：优先取详情链接里的 ID，其次 data-job-id，都没有时生成临时 ID。"""
    try:
        links = driver.query_all(JOB_LINK_SELECTOR, card)
        if links:
            href = driver.attribute(links[0], "href") or ""
            match = JOB_ID_PATTERN.search(href)
            if match:
                return match.group(1)
        attr = driver.attribute(card, "data-job-id")
        if attr:
            return attr
    except Exception:
        pass
    return f"temp_id_{uuid.uuid4().hex[:12]}"


def _first_visible(driver, selector: str, timeout_ms: int, *, root=None):
    def locate():
        nodes = driver.query_all(selector, root)
        return nodes[0] if nodes else None

    try:
        return wait_for_visible(
            driver, locate, query=selector, timeout_ms=timeout_ms, interval_ms=POLL_MS
        )
    except NotVisible:
        return None


def _card_at(driver, job_list, index: int):
    """按序号重新取卡片（旧句柄可能已失效），短暂等待其可见。"""

    def locate():
        cards = driver.query_all(CARD_SELECTOR, job_list)
        return cards[index] if index < len(cards) else None

    try:
        return wait_for_visible(
            driver, locate, query=f"card #{index + 1}", timeout_ms=CARD_TIMEOUT_MS, interval_ms=POLL_MS
        )
    except NotVisible:
        return None


def _close_if_present(driver, selector: str, label: str, log: LogFn) -> None:
    node = _first_visible(driver, selector, CLOSE_TIMEOUT_MS)
    if node is None:
        return
    try:
        driver.click_node(node)
        driver.wait(500)
        log(f"[投递] 已尝试关闭{label}。", "info")
    except Exception as e:
        log(f"[投递] 关闭{label}失败：{e}", "warn")


def _apply_to_open_card(driver, job_id: str, log: LogFn) -> bool:
    chat = _first_visible(driver, CHAT_BUTTON_SELECTOR, BUTTON_TIMEOUT_MS)
    if chat is None:
        log(f"[投递] 未找到“立即沟通”按钮 ({CHAT_BUTTON_SELECTOR})，跳过此卡片。", "info")
        return False
    log("[投递] 找到并点击“立即沟通”按钮...", "info")
    driver.click_node(chat)
    driver.wait(2000)

    stay = _first_visible(driver, STAY_BUTTON_SELECTOR, BUTTON_TIMEOUT_MS)
    if stay is None:
        log("[投递] 未找到“留在此页”按钮，尝试关闭可能弹出的聊天框。", "info")
        _close_if_present(driver, CLOSE_CHAT_SELECTOR, "聊天窗口", log)
        return False
    driver.click_node(stay)
    driver.wait(1500)
    log(f"[投递] 投递成功！(ID: {job_id})", "info")
    return True


def perform_application(
    driver,
    state: ApplyLoopState,
    *,
    settings: Optional[ApplyLoopSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> StepResult:
    settings = settings or ApplyLoopSettings()
    log = log_fn or _noop_log

    job_list = _first_visible(driver, JOB_LIST_SELECTOR, LIST_TIMEOUT_MS)
    if job_list is None:
        state.missing_list_count += 1
        log(f"[投递] 未找到职位列表 ({JOB_LIST_SELECTOR})，第 {state.missing_list_count} 次。", "warn")
        if decide_missing_list(state.missing_list_count, settings.max_list_missing) == "go_back":
            state.missing_list_count = 0
            state.reset_queue()
            return "go_back"
        driver.wait(LIST_RETRY_WAIT_MS)
        return "processed"
    state.missing_list_count = 0

    cards = driver.query_all(CARD_SELECTOR, job_list)
    visible_ids = [job_id_from_card(driver, card) for card in cards]
    state.queue, discovered = merge_visible_cards(visible_ids, state.queue, state.processed_ids)
    log(
        f"[投递] 可见 {len(cards)} 张卡片，队列 {len(state.queue)} 张"
        f"{'（发现新卡片）' if discovered else ''}。",
        "info",
    )

    target_index: Optional[int] = None
    for i in range(state.index, len(state.queue)):
        slot = state.queue[i]
        if slot.processed:
            continue
        if _card_at(driver, job_list, i) is None:
            log(f"[投递] 索引 {i} 的卡片 ({slot.id}) 已不可用，标记为已处理。", "warn")
            slot.processed = True
            continue
        target_index = i
        break

    if target_index is None:
        log("[投递] 没有新的可操作卡片，尝试滚动列表...", "info")
        moved = driver.scroll_container(job_list)
        driver.wait(SCROLL_SETTLE_MS)
        state.reset_queue()
        if not moved:
            log("[投递] 滚动位置没有变化，可能已到达列表底部。", "info")
            return "no_more_cards"
        return "processed"

    state.index = target_index
    slot = state.queue[target_index]
    state.attempted += 1
    log(f"[投递] 准备处理卡片 (序号: {target_index + 1}, ID: {slot.id})", "info")

    try:
        card = _card_at(driver, job_list, target_index)
        if card is None:
            raise RuntimeError(f"card #{target_index + 1} disappeared")
        driver.scroll_into_view(card)
        driver.wait(settings.between_cards_ms)
        driver.click_node(card)
        driver.wait(settings.card_settle_ms)
        if _apply_to_open_card(driver, slot.id, log):
            state.applied += 1
    except Exception as e:
        log(f"[投递] 投递过程中发生错误 (序号: {target_index + 1}, ID: {slot.id}): {e}", "error")
        state.error_count += 1
        _close_if_present(driver, CLOSE_CHAT_SELECTOR, "聊天窗口", log)
        _close_if_present(driver, CLOSE_DETAIL_SELECTOR, "职位详情侧栏", log)
        _mark_done(state, slot)
        if decide_after_error(state.error_count, settings.max_consecutive_errors) == "refresh_page":
            log(f"[投递] 连续 {state.error_count} 次投递失败，尝试刷新页面。", "warn")
            state.error_count = 0
            return "refresh_page"
        return "processed"

    _mark_done(state, slot)
    _close_if_present(driver, CLOSE_DETAIL_SELECTOR, "职位详情侧栏", log)
    state.error_count = 0
    return "processed"


def _mark_done(state: ApplyLoopState, slot: CardSlot) -> None:
    # 成功与否都记为已处理，避免无限重试同一张卡片
    state.processed_ids.add(slot.id)
    slot.processed = True
    state.index += 1


def run_apply_loop(
    driver,
    stop_event: threading.Event,
    *,
    settings: Optional[ApplyLoopSettings] = None,
    log_fn: Optional[LogFn] = None,
    state: Optional[ApplyLoopState] = None,
) -> ApplyLoopState:
    """反复执行 perform_application，直到 stop_event 被设置或导航失败。"""
    settings = settings or ApplyLoopSettings()
    log = log_fn or _noop_log
    state = state or ApplyLoopState()
    log("[投递] 自动投递已启动，将按顺序处理职位。", "info")

    while not stop_event.is_set():
        result = perform_application(driver, state, settings=settings, log_fn=log)
        if result == "go_back":
            try:
                driver.go_back()
            except Exception as e:
                log(f"[投递] 返回上一页失败：{e}，停止自动投递。", "error")
                break
            state.reset_for_page()
            driver.wait(settings.idle_wait_ms)
        elif result == "refresh_page":
            try:
                driver.reload()
            except Exception as e:
                log(f"[投递] 刷新页面失败：{e}，停止自动投递。", "error")
                break
            state.reset_for_page()
            driver.wait(settings.idle_wait_ms)
        elif result == "no_more_cards":
            log("[投递] 当前轮次没有可投递卡片，等待后重试...", "info")
            state.error_count = 0
            driver.wait(settings.idle_wait_ms)
        else:
            driver.wait(settings.between_cards_ms)

    log(f"[投递] 自动投递已停止（尝试 {state.attempted}，成功 {state.applied}）。", "info")
    return state
