"""
定位器阈值与节奏参数。

方向过滤阈值（"标题上方 20px"、"标题高度内的同一水平带"等）是针对单个站点
经验调出来的，这里全部做成可配置项，默认值沿用原始调参结果。
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

# 必须为正的配置项
_POSITIVE_KEYS = frozenset({"poll_interval_ms"})


@dataclass(frozen=True)
class ResolverSettings:
    # 文本匹配
    label_text_slack: int = 20
    option_text_slack: int = 5
    keyword_text_max: int = 200
    checkable_text_max: int = 100
    # 结构/几何过滤
    min_ancestor_depth: int = 2
    viewport_fraction: float = 0.7
    button_above_tolerance: float = 20.0
    button_band_factor: float = 1.0
    input_above_tolerance: float = 10.0
    edit_min_length: int = 5
    # 节奏（毫秒）
    settle_ms: int = 500
    click_settle_ms: int = 1000
    poll_interval_ms: int = 500
    container_timeout_ms: int = 5000

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "ResolverSettings":
        """从 config.yaml 的 resolver 段构造，忽略未知键。"""
        if not isinstance(raw, dict):
            return cls()
        defaults = cls()
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in raw.items():
            if key not in known or value is None:
                continue
            default = getattr(defaults, key)
            try:
                coerced = type(default)(value)
            except (TypeError, ValueError):
                continue
            if key in _POSITIVE_KEYS and coerced <= 0:
                continue
            kwargs[key] = coerced
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class ApplyLoopSettings:
    max_list_missing: int = 3
    max_consecutive_errors: int = 3
    card_settle_ms: int = 2500
    idle_wait_ms: int = 5000
    between_cards_ms: int = 1000

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "ApplyLoopSettings":
        if not isinstance(raw, dict):
            return cls()
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            value = raw.get(f.name)
            if value is None:
                continue
            try:
                kwargs[f.name] = int(value)
            except (TypeError, ValueError):
                continue
        return cls(**kwargs)
