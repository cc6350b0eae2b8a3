"""
Configuration module for loading runtime settings and resume data.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import yaml

from ..core.records import ResumeData
from ..core.settings import ApplyLoopSettings, ResolverSettings


# Config directory path
CONFIG_DIR = Path(__file__).parent
CONFIG_PATH = Path(
    os.getenv("AUTORESUME_CONFIG", str(CONFIG_DIR.parent / "config.yaml"))
)
RESUME_PATH = Path(os.getenv("AUTORESUME_RESUME", str(CONFIG_DIR / "resume.yaml")))

DEFAULT_REFRESH_INTERVAL_SECONDS = 600
DEFAULT_EDIT_INTERVAL_SECONDS = 3600
DEFAULT_TICK_SECONDS = 1.0


_settings_cache: Optional[dict] = None


class ResumeDataError(Exception):
    """简历数据缺失或无法解析；自动填写流程无法继续。"""


def load_settings(force_reload: bool = False) -> dict:
    """
    Load settings from config.yaml.
    Caches the result for performance.

    Returns:
        dict: settings data (empty when the file is missing or broken)
    """
    global _settings_cache

    if _settings_cache is not None and not force_reload:
        return _settings_cache

    if not CONFIG_PATH.exists():
        print(f"⚠️ Config not found: {CONFIG_PATH}")
        return {}

    try:
        with open(CONFIG_PATH, "r", encoding="utf-8") as f:
            _settings_cache = yaml.safe_load(f) or {}
        return _settings_cache
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return {}


def resolver_settings() -> ResolverSettings:
    return ResolverSettings.from_dict(load_settings().get("resolver"))


def apply_loop_settings() -> ApplyLoopSettings:
    return ApplyLoopSettings.from_dict(load_settings().get("apply_loop"))


def schedule_settings() -> dict:
    """周期任务间隔（秒）；<= 0 表示关闭该周期任务。"""
    raw = load_settings().get("schedule") or {}
    return {
        "refresh_interval_seconds": float(
            raw.get("refresh_interval_seconds", DEFAULT_REFRESH_INTERVAL_SECONDS)
        ),
        "edit_interval_seconds": float(
            raw.get("edit_interval_seconds", DEFAULT_EDIT_INTERVAL_SECONDS)
        ),
        "tick_seconds": float(raw.get("tick_seconds", DEFAULT_TICK_SECONDS)),
    }


def load_resume_data(path: Optional[Path] = None) -> ResumeData:
    """
    Load resume records from YAML (or legacy JSON).

    Raises:
        ResumeDataError: file missing, unparsable, or structurally invalid
    """
    resume_path = Path(path) if path else RESUME_PATH
    if not resume_path.exists():
        raise ResumeDataError(f"resume data not found: {resume_path}")
    try:
        raw_text = resume_path.read_text(encoding="utf-8")
        if resume_path.suffix.lower() == ".json":
            raw = json.loads(raw_text)
        else:
            raw = yaml.safe_load(raw_text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ResumeDataError(f"failed to parse {resume_path}: {e}") from e
    try:
        return ResumeData.from_dict(raw or {})
    except ValueError as e:
        raise ResumeDataError(str(e)) from e
