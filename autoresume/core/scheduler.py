"""
单线程任务调度器。

职责：
- 启动并独占浏览器会话（Playwright 同步 API 只能在创建它的线程里使用）
- 按间隔执行周期任务：refresh（重载目标页）、edit（刷新在线简历）
- 消费命令队列：open / refresh / edit / autofill / apply
- 每条日志打印到终端并写入 run_logs 表

HTTP 层只负责 enqueue，不直接触碰浏览器。
"""

from __future__ import annotations

import queue
import time
from dataclasses import dataclass
from threading import Event, Thread
from typing import Callable, Optional

from ..config import (
    ResumeDataError,
    apply_loop_settings,
    load_resume_data,
    resolver_settings,
    schedule_settings,
)
from ..db.database import get_session
from ..models.run_log import RunLog
from ..models.saved_resume import SavedResume
from .apply_loop import run_apply_loop
from .browser_manager import BrowserManager, BrowserSession
from .dom_driver import PlaywrightDriver
from .form_lifecycle import autofill_resume
from .resume_refresh import refresh_resume

COMMANDS: tuple[str, ...] = ("open", "refresh", "edit", "autofill", "apply")


@dataclass
class SchedulerConfig:
    """
    调度器配置（从 config.yaml 的 schedule 段读取）。
    间隔 <= 0 表示关闭对应的周期任务。
    """

    refresh_interval_seconds: float = 600.0
    edit_interval_seconds: float = 3600.0
    tick_seconds: float = 1.0

    @classmethod
    def from_settings(cls) -> "SchedulerConfig":
        return cls(**schedule_settings())


def _log(task: str, message: str, level: str = "info") -> None:
    """写入日志"""
    with get_session() as session:
        session.add(RunLog(task=task, level=level, message=message))
    print(f"[task={task}] [{level.upper()}] {message}")


def _task_logger(task: str) -> Callable[[str, str], None]:
    def log(message: str, level: str = "info") -> None:
        _log(task, message, level)

    return log


class AutomationScheduler:
    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        manager_factory: Callable[..., BrowserManager] = BrowserManager,
    ) -> None:
        self.config = config or SchedulerConfig()
        self._manager_factory = manager_factory
        self._manager: Optional[BrowserManager] = None
        self._session: Optional[BrowserSession] = None
        self._stop_event = Event()
        self._apply_stop = Event()
        self._commands: "queue.Queue[str]" = queue.Queue()
        self._thread: Optional[Thread] = None
        self._running = False
        self._last_run: dict[str, float] = {}
        self.current_task: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_commands(self) -> int:
        return self._commands.qsize()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._apply_stop.clear()
        self._thread = Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        self._running = True

    def stop(self) -> None:
        self._stop_event.set()
        self._apply_stop.set()
        self._running = False

    def enqueue(self, command: str) -> bool:
        command = command.strip().lower()
        if command not in COMMANDS:
            return False
        if command == "apply":
            self._apply_stop.clear()
        self._commands.put(command)
        return True

    def stop_apply(self) -> None:
        self._apply_stop.set()

    # --- 工作线程 ---
    def _run_loop(self) -> None:
        try:
            self._manager = self._manager_factory(log_fn=_task_logger("browser"))
            self._session = self._manager.launch()
        except Exception as e:
            _log("browser", f"浏览器启动失败: {e}", "error")
            self._running = False
            return

        now = time.monotonic()
        self._last_run = {"refresh": now, "edit": now}
        try:
            while not self._stop_event.is_set():
                self._run_due_periodic(time.monotonic())
                try:
                    command = self._commands.get(timeout=self.config.tick_seconds)
                except queue.Empty:
                    continue
                self.execute(command)
        finally:
            self._close_session()

    def _run_due_periodic(self, now: float) -> list[str]:
        ran: list[str] = []
        intervals = {
            "refresh": self.config.refresh_interval_seconds,
            "edit": self.config.edit_interval_seconds,
        }
        for task, interval in intervals.items():
            if interval <= 0:
                continue
            if now - self._last_run.get(task, now) < interval:
                continue
            self._last_run[task] = now
            _log(task, "[定时任务] 开始执行")
            self.execute(task)
            ran.append(task)
        return ran

    def execute(self, command: str) -> None:
        handler = getattr(self, f"_task_{command}", None)
        if handler is None:
            _log("scheduler", f"未知指令: {command}", "warn")
            return
        self.current_task = command
        try:
            handler()
        except Exception as e:
            _log(command, f"任务执行失败: {e}", "error")
        finally:
            self.current_task = None

    def _close_session(self) -> None:
        if self._session is None:
            return
        try:
            self._session.close()
        except Exception as e:
            _log("browser", f"关闭浏览器失败: {e}", "warn")
        self._session = None

    def _require_session(self, task: str) -> Optional[BrowserSession]:
        if self._session is None or self._manager is None:
            _log(task, "浏览器尚未启动", "warn")
            return None
        return self._session

    def _primary_page(self, session: BrowserSession):
        for url in self._manager.target_urls:
            page = session.page_for(url)
            if page is not None:
                return page
        pages = session.pages_on_hosts(self._manager.target_urls)
        return pages[0] if pages else None

    # --- 任务 ---
    def _task_open(self) -> None:
        session = self._require_session("open")
        if session is None:
            return
        opened = self._manager.open_targets(session)
        _log("open", f"新打开 {len(opened)} 个页面")

    def _task_refresh(self) -> None:
        session = self._require_session("refresh")
        if session is None:
            return
        reloaded = self._manager.reload_targets(session)
        _log("refresh", f"已刷新 {len(reloaded)} 个页面")

    def _task_edit(self) -> None:
        session = self._require_session("edit")
        if session is None:
            return
        log = _task_logger("edit")
        settings = resolver_settings()
        pages = session.pages_on_hosts(self._manager.target_urls)
        if not pages:
            log("没有处于目标站点的页面，跳过简历刷新", "warn")
            return
        saved = 0
        for page in pages:
            outcome = refresh_resume(PlaywrightDriver(page), settings=settings, log_fn=log)
            if outcome.saved and outcome.saved_url:
                self._record_saved_resume(outcome.original_url, outcome.saved_url)
                saved += 1
        log(f"[统计] 本次成功保存 {saved} 份简历")

    def _task_autofill(self) -> None:
        session = self._require_session("autofill")
        if session is None:
            return
        log = _task_logger("autofill")
        try:
            resume = load_resume_data()
        except ResumeDataError as e:
            log(f"[主流程] 读取简历数据失败，流程停止: {e}", "error")
            return
        page = self._primary_page(session)
        if page is None:
            log("没有可用的目标页面", "error")
            return
        outcomes = autofill_resume(
            PlaywrightDriver(page), resume, settings=resolver_settings(), log_fn=log
        )
        failed = [o.record_name for o in outcomes if not o.completed]
        log(f"[主流程] 共处理 {len(outcomes)} 条记录，未完成 {len(failed)} 条 {failed}")

    def _task_apply(self) -> None:
        session = self._require_session("apply")
        if session is None:
            return
        log = _task_logger("apply")
        page = self._primary_page(session)
        if page is None:
            log("没有可用的目标页面", "error")
            return
        run_apply_loop(
            PlaywrightDriver(page),
            self._apply_stop,
            settings=apply_loop_settings(),
            log_fn=log,
        )

    def _record_saved_resume(self, source_url: str, saved_url: str) -> None:
        with get_session() as session:
            session.add(SavedResume(source_url=source_url, saved_url=saved_url))


# 全局单例调度器
scheduler = AutomationScheduler(config=SchedulerConfig.from_settings())
