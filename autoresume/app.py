from contextlib import asynccontextmanager
import json

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import load_settings, resolver_settings
from .core import trace
from .core.scheduler import COMMANDS, scheduler
from .db.database import init_db, get_session
from .models.run_log import RunLog
from .models.saved_resume import SavedResume


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 初始化数据库等资源
    init_db()
    yield
    scheduler.stop()


app = FastAPI(title="Resume Autopilot - Resume Editor Automation", lifespan=lifespan)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/api/control/start")
def start_scheduler():
    """
    启动调度器（工作线程会启动浏览器并打开目标页面）
    """
    scheduler.start()
    return {"ok": True, "message": "scheduler started"}


@app.post("/api/control/pause")
def pause_scheduler():
    """
    停止调度器，同时中断正在运行的投递循环
    """
    scheduler.stop()
    return {"ok": True, "message": "paused"}


@app.get("/api/control/status")
def scheduler_status():
    return {
        "ok": True,
        "running": scheduler.is_running,
        "current_task": scheduler.current_task,
        "pending_commands": scheduler.pending_commands,
    }


@app.post("/api/tasks/{command}")
def enqueue_task(command: str):
    """
    投递一条指令到调度器队列：open / refresh / edit / autofill / apply
    """
    if not scheduler.is_running:
        return {"ok": False, "error": "scheduler not running"}
    if not scheduler.enqueue(command):
        return {"ok": False, "error": f"unknown command: {command}", "commands": list(COMMANDS)}
    return {"ok": True, "message": f"{command} queued"}


@app.post("/api/apply/stop")
def stop_apply():
    """停止投递循环（当前卡片处理完后退出），调度器本身继续运行。"""
    scheduler.stop_apply()
    return {"ok": True, "message": "apply loop stopping"}


@app.get("/api/logs")
def get_logs(task: str | None = None, limit: int = 200):
    """返回最近的任务日志（按时间正序）。"""
    with get_session() as session:
        query = session.query(RunLog)
        if task:
            query = query.filter(RunLog.task == task)
        logs = query.order_by(RunLog.id.desc()).limit(max(1, limit)).all()
        return [log.to_dict() for log in reversed(logs)]


@app.get("/api/saved-resumes")
def list_saved_resumes():
    with get_session() as session:
        rows = session.query(SavedResume).order_by(SavedResume.id.desc()).all()
        return [row.to_dict() for row in rows]


@app.get("/api/config/resolver")
def get_resolver_config():
    """当前生效的定位器阈值（config.yaml 覆盖后的结果）。"""
    return resolver_settings().to_dict()


@app.get("/api/trace")
def get_resolution_trace(limit: int = 50):
    """定位诊断记录的最后 limit 条。"""
    path = trace.TRACE_LOG_PATH
    if not path.exists():
        return []
    events = []
    for line in path.read_text(encoding="utf-8").splitlines()[-max(1, limit):]:
        try:
            events.append(json.loads(line))
        except ValueError:
            continue
    return events


@app.get("/api/targets/check")
def check_targets():
    """探测配置中的目标页面是否可访问（不经过浏览器）。"""
    results = []
    for url in load_settings().get("targets") or []:
        try:
            resp = httpx.get(str(url), timeout=10.0, follow_redirects=True)
            results.append({"url": url, "ok": resp.status_code < 400, "status": resp.status_code})
        except httpx.HTTPError as e:
            results.append({"url": url, "ok": False, "error": str(e)})
    return results


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("autoresume.app:app", host="127.0.0.1", port=8000, reload=False)
