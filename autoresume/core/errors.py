"""
定位器异常分类。

- NotFound: 过滤/打分后没有候选存活
- NotVisible: 命中了节点，但几何尺寸为 0（未渲染）
- ActivationFailed: 结构化点击与坐标点击都失败

不存在 "Ambiguous"：平局总是按固定顺序打破。
"""

from __future__ import annotations


class ResolverError(Exception):
    """定位失败的基类，携带触发失败的查询文本。"""

    def __init__(self, query: str, message: str = "") -> None:
        self.query = query
        super().__init__(message or query)


class NotFound(ResolverError):
    pass


class NotVisible(ResolverError):
    pass


class ActivationFailed(ResolverError):
    pass
