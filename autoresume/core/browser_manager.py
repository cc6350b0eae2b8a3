"""
浏览器管理模块：统一管理 Playwright 持久化浏览器启动、目标标签页与事件日志。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from playwright.sync_api import BrowserContext, Page, sync_playwright

from ..config import load_settings

LogFn = Callable[[str, str], None]

DEFAULT_PROFILE_DIR = "~/.cache/autoresume/chrome-profile"
DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}


@dataclass
class BrowserSession:
    playwright: Any
    context: BrowserContext
    tabs: dict[str, Page] = field(default_factory=dict)

    def page_for(self, url: str) -> Optional[Page]:
        page = self.tabs.get(url)
        if page is not None and page.is_closed():
            self.tabs.pop(url, None)
            return None
        return page

    def pages_on_hosts(self, urls: list[str]) -> list[Page]:
        """上下文中所有落在目标站点域名下的标签页（包括用户手动打开的）。"""
        hosts = {urlparse(u).hostname for u in urls if urlparse(u).hostname}
        out: list[Page] = []
        for page in self.context.pages:
            if page.is_closed():
                continue
            if urlparse(page.url).hostname in hosts:
                out.append(page)
        return out

    def close(self) -> None:
        try:
            self.context.close()
        finally:
            try:
                self.playwright.stop()
            except Exception:
                pass


class BrowserManager:
    """
    管理浏览器生命周期与配置，避免业务流程中重复拼装启动参数。
    """

    def __init__(self, log_fn: Optional[LogFn] = None, settings: Optional[dict] = None) -> None:
        self._log = log_fn or (lambda msg, level="info": None)
        self._settings = settings if settings is not None else load_settings()

    @property
    def target_urls(self) -> list[str]:
        return [str(u) for u in (self._settings.get("targets") or []) if u]

    def launch_args(self) -> dict:
        browser_cfg = self._settings.get("browser", {}) or {}
        headless = bool(browser_cfg.get("headless", False))
        slow_mo = int(browser_cfg.get("slow_mo", 0))
        raw_profile_dir = browser_cfg.get("user_data_dir") or DEFAULT_PROFILE_DIR
        width = int(browser_cfg.get("width", DEFAULT_VIEWPORT["width"]))
        height = int(browser_cfg.get("height", DEFAULT_VIEWPORT["height"]))

        launch_args = {
            "headless": headless,
            "slow_mo": slow_mo if slow_mo > 0 else None,
            "user_data_dir": str(Path(raw_profile_dir).expanduser()),
            "viewport": {"width": width, "height": height},
            "args": [f"--window-size={width},{height}"],
            "executable_path": browser_cfg.get("executable_path") or None,
        }
        # 清理 None 参数
        return {k: v for k, v in launch_args.items() if v is not None}

    def launch(self) -> BrowserSession:
        """启动持久化浏览器（保留登录状态），并打开全部目标页面。"""
        playwright = sync_playwright().start()
        context = playwright.chromium.launch_persistent_context(**self.launch_args())
        self._attach_context_listeners(context)
        session = BrowserSession(playwright=playwright, context=context)
        self.open_targets(session)
        return session

    def open_targets(self, session: BrowserSession) -> list[str]:
        """打开尚未打开的目标页面，返回本次新打开的 URL。"""
        opened: list[str] = []
        open_urls = {p.url for p in session.context.pages if not p.is_closed()}
        for url in self.target_urls:
            if session.page_for(url) is not None or url in open_urls:
                self._log(f"[已打开] {url}")
                continue
            try:
                page = session.context.new_page()
                self._attach_basic_listeners(page)
                page.goto(url, wait_until="domcontentloaded", timeout=30000)
            except Exception as e:
                self._log(f"[打开失败] {url}: {e}", "error")
                continue
            session.tabs[url] = page
            opened.append(url)
            self._log(f"[打开] {url}")
        return opened

    def reload_targets(self, session: BrowserSession) -> list[str]:
        reloaded: list[str] = []
        for url in self.target_urls:
            page = session.page_for(url)
            if page is None:
                self._log(f"[未找到页面] {url}", "warn")
                continue
            try:
                page.reload(wait_until="domcontentloaded", timeout=30000)
            except Exception as e:
                self._log(f"[刷新失败] {url}: {e}", "error")
                continue
            reloaded.append(url)
            self._log(f"[已刷新] {url}")
        return reloaded

    def _attach_basic_listeners(self, page: Page) -> None:
        """采集页面基础错误信息，写入日志便于排查。"""
        try:
            page.on(
                "pageerror",
                lambda exc: self._log(f"[pageerror] {exc}", "error"),
            )
        except Exception:
            pass

    def _attach_context_listeners(self, context: BrowserContext) -> None:
        try:
            context.on(
                "requestfailed",
                lambda req: self._log(
                    f"[requestfailed] {req.method} {req.url}", "warn"
                ),
            )
        except Exception:
            pass
