"""
Resume Autopilot - 简历编辑器自动填写 / 定时刷新 / 职位卡片投递

包初始化文件。
"""

from __future__ import annotations

from dotenv import find_dotenv, load_dotenv

# Auto-load project .env once on package import so AUTORESUME_* overrides
# work without exporting them manually.
load_dotenv(find_dotenv(usecwd=True), override=False)
