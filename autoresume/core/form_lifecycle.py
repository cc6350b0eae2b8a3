"""
表单生命周期编排：每条记录走一遍
  找区块标题 → 点“添加” → 等待 → 识别新容器（仅辅助日志）→ 逐字段填写 → 点保存 / Escape

失败策略是尽力而为：标题或添加按钮缺失只放弃当前记录；字段失败只记录日志。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from .errors import NotVisible, ResolverError
from .field_fill import FieldResult, activate, fill_field
from .geometry import bounding_box, describe, wait_for_visible
from .proximity import find_button_near, find_input_by_label, find_section_title
from .records import FormSession, RecordSpec, ResumeData
from .settings import ResolverSettings
from .trace import append_resolution_trace

LogFn = Callable[[str, str], None]

# 顺序即优先级；通用 div 放最后，且要求额外的尺寸/位置条件
CONTAINER_SELECTORS: tuple[str, ...] = (
    '[role="dialog"]',
    ".ant-modal-content",
    ".el-dialog",
    "form",
    '[class*="form-modal"]',
    '[class*="modal-dialog"]',
    '[class*="drawer-content"]',
    'div[tabindex="-1"]',
    "div",
)
GENERIC_CONTAINER = "div"
MIN_GENERIC_WIDTH = 200
MIN_GENERIC_HEIGHT = 100


def _noop_log(msg: str, level: str = "info") -> None:
    return None


@dataclass
class RecordOutcome:
    record_name: str
    title_found: bool = False
    form_opened: bool = False
    container_path: Optional[str] = None
    fields: list[FieldResult] = field(default_factory=list)
    saved: bool = False
    escaped: bool = False
    error: Optional[str] = None

    @property
    def filled(self) -> list[str]:
        return [f.label for f in self.fields if f.ok]

    @property
    def failed(self) -> list[str]:
        return [f.label for f in self.fields if not f.ok]

    @property
    def completed(self) -> bool:
        return self.error is None


def snapshot_container_paths(driver) -> set[str]:
    """点击“添加”之前已存在的通用 div 路径，识别容器时排除它们。"""
    paths: set[str] = set()
    try:
        for node in driver.query_all(GENERIC_CONTAINER):
            path = describe(driver, node)
            if path and path != "N/A":
                paths.add(path)
    except Exception:
        pass
    return paths


def _generic_div_acceptable(driver, node, box, viewport) -> bool:
    try:
        parent = driver.parent(node)
        if parent is not None and driver.tag(parent) == "body":
            return True
    except Exception:
        pass
    width, height = viewport
    return (
        box.x > 0
        and box.y > 0
        and box.right < width
        and box.bottom < height
        and box.width > MIN_GENERIC_WIDTH
        and box.height > MIN_GENERIC_HEIGHT
    )


def _container_holding(driver, target, known_paths: set[str]):
    viewport = driver.viewport()
    for selector in CONTAINER_SELECTORS:
        for node in driver.query_all(selector):
            box = bounding_box(driver, node)
            if box is None:
                continue
            try:
                if driver.tag(node) == "body" or not driver.contains(node, target):
                    continue
            except Exception:
                continue
            if selector == GENERIC_CONTAINER:
                if not _generic_div_acceptable(driver, node, box, viewport):
                    continue
                if describe(driver, node) in known_paths:
                    continue
            return node
    return None


def resolve_form_container(
    driver,
    first_field_label: str,
    *,
    known_paths: Optional[set[str]] = None,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
):
    """
    识别“添加”后新出现的表单容器：先全页面定位首个字段，再按选择器优先级找包含它的容器。
    超时返回 None；结果只用于日志和保存按钮的定位范围。
    """
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    known = known_paths or set()
    log(f"[表单识别] 尝试识别新表单容器，预期包含字段：“{first_field_label}”...", "info")

    def locate():
        try:
            match = find_input_by_label(driver, first_field_label, settings=settings)
        except ResolverError:
            return None
        return _container_holding(driver, match.node, known)

    try:
        container = wait_for_visible(
            driver,
            locate,
            query=first_field_label,
            timeout_ms=settings.container_timeout_ms,
            interval_ms=settings.poll_interval_ms,
        )
    except NotVisible:
        log(
            f"[表单识别] 未能在 {settings.container_timeout_ms}ms 内识别到包含字段“{first_field_label}”的新表单容器。",
            "warn",
        )
        append_resolution_trace(
            kind="container", query=first_field_label, outcome="not_found", data={}
        )
        return None

    path = describe(driver, container)
    log(f"[表单识别] 成功识别新表单容器：{path}，包含字段“{first_field_label}”。", "info")
    append_resolution_trace(
        kind="container", query=first_field_label, outcome="matched", data={"path": path}
    )
    return container


def _click_save(
    driver,
    record: RecordSpec,
    session: FormSession,
    *,
    settings: ResolverSettings,
    log: LogFn,
) -> bool:
    query = "/".join(record.save_labels)
    try:
        if session.container is not None and bounding_box(driver, session.container):
            match = find_button_near(
                driver,
                session.container,
                record.save_labels,
                scope=session.container,
                settings=settings,
                log_fn=log,
            )
        else:
            # 标题句柄可能已失效，重新定位
            title = find_section_title(
                driver, record.title_labels, settings=settings, log_fn=log
            )
            match = find_button_near(
                driver, title.node, record.save_labels, settings=settings, log_fn=log
            )
        activate(driver, match.node, settings=settings, log_fn=log)
    except ResolverError as e:
        log(f"[{record.name}] 未找到可点击的“{query}”按钮：{e}", "warn")
        return False
    except Exception as e:
        log(f"[{record.name}] 点击“{query}”按钮时出错：{e}", "error")
        return False
    driver.wait(settings.settle_ms)
    return True


def fill_record(
    driver,
    record: RecordSpec,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> RecordOutcome:
    settings = settings or ResolverSettings()
    log = log_fn or _noop_log
    outcome = RecordOutcome(record_name=record.name)
    session = FormSession(record_name=record.name)
    log(f"--- 开始填充 {record.name} ---", "info")

    try:
        title = find_section_title(driver, record.title_labels, settings=settings, log_fn=log)
    except ResolverError as e:
        outcome.error = "title_not_found"
        log(f"[{record.name}] 未找到“{'/'.join(record.title_labels)}”区域标题，跳过此记录：{e}", "error")
        return outcome
    outcome.title_found = True

    if record.opens_form:
        known = snapshot_container_paths(driver) if record.first_form_field_label else set()
        try:
            button = find_button_near(
                driver, title.node, record.add_button_labels, settings=settings, log_fn=log
            )
            activate(driver, button.node, settings=settings, log_fn=log)
        except ResolverError as e:
            outcome.error = "add_button_failed"
            log(f"[{record.name}] 未能点击“{'/'.join(record.add_button_labels)}”按钮，跳过此记录：{e}", "error")
            return outcome
        outcome.form_opened = True
        log(f"[{record.name}] 已点击添加按钮：\"{button.anchor_text}\"", "info")
        driver.wait(settings.settle_ms * 2)

        if record.first_form_field_label:
            session.container = resolve_form_container(
                driver,
                record.first_form_field_label,
                known_paths=known,
                settings=settings,
                log_fn=log,
            )
            if session.container is not None:
                session.container_path = describe(driver, session.container)
        else:
            log(f"[{record.name}] 未提供 first_form_field_label，在全页面查找字段。", "info")
        outcome.container_path = session.container_path

    for spec in record.fields:
        result = fill_field(driver, spec, settings=settings, log_fn=log)
        outcome.fields.append(result)
        if result.ok:
            session.filled.append(spec.display_label)
            continue
        session.failed.append(spec.display_label)
        if spec.optional:
            log(f"[{record.name}] 可选字段 \"{spec.display_label}\" 未能找到或填写，已跳过。", "info")
        else:
            log(f"[{record.name}] 警告：非可选字段 \"{spec.display_label}\" 未能成功填写。", "warn")

    if record.opens_form:
        log(f"[{record.name}] 表单填充完毕，正在寻找保存/确定按钮...", "info")
        session.saved = _click_save(driver, record, session, settings=settings, log=log)
        if session.saved:
            log(f"[{record.name}] 成功点击保存/确定按钮。", "info")
        else:
            try:
                driver.press("Escape")
                outcome.escaped = True
                log(f"[{record.name}] 未找到保存按钮，已模拟按下 Escape。", "warn")
            except Exception as e:
                log(f"[{record.name}] 未找到保存按钮，按下 Escape 也失败：{e}", "error")
        outcome.saved = session.saved

    log(
        f"--- {record.name} 填充结束（成功 {len(session.filled)}，失败 {len(session.failed)}）---",
        "info",
    )
    return outcome


def autofill_resume(
    driver,
    resume: ResumeData,
    *,
    settings: Optional[ResolverSettings] = None,
    log_fn: Optional[LogFn] = None,
) -> list[RecordOutcome]:
    """依次处理个人信息、每个项目经历、每个实习经历；单条记录失败不影响其余记录。"""
    log = log_fn or _noop_log
    records = resume.records()
    if not records:
        log("[主流程] 简历数据中没有可填写的记录。", "warn")
        return []
    log("--- 开始自动填写简历流程 ---", "info")
    outcomes: list[RecordOutcome] = []
    for record in records:
        try:
            outcome = fill_record(driver, record, settings=settings, log_fn=log)
        except Exception as e:
            outcome = RecordOutcome(record_name=record.name, error=f"{type(e).__name__}: {e}")
            log(f"[主流程] {record.name} 填充时发生异常：{e}", "error")
        if not outcome.completed:
            log(f"[主流程] {record.name} 填充遇到问题（{outcome.error}），继续下一条记录。", "warn")
        outcomes.append(outcome)
    log("--- 自动填写简历流程结束 ---", "info")
    return outcomes
