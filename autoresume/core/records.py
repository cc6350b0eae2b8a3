"""
简历填写数据模型。

resume.yaml 结构示例：

    personal_info:
      title_labels: ["个人信息"]
      fields:
        - label_texts: ["姓名"]
          value: "张三"
    project_experiences:
      - title_labels: ["项目经历"]
        add_button_labels: ["添加项目", "添加"]
        first_form_field_label: "项目名称"
        fields:
          - label_texts: ["项目时间", "开始时间"]
            value: ["2024", "06"]

同时兼容旧版 resume.json 的驼峰键（titleLabels / labelTexts ...）。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

DEFAULT_SAVE_LABELS: tuple[str, ...] = ("保存", "确定", "提交", "完成")


def _pick(raw: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _as_text_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(x).strip() for x in value if str(x).strip()]
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return []


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "on")
    return bool(value)


@dataclass
class FieldSpec:
    label_texts: list[str]
    value: str | list[str]
    optional: bool = False
    control: str = "input"  # input | select

    @property
    def values(self) -> list[str]:
        if isinstance(self.value, (list, tuple)):
            return [str(v) for v in self.value]
        return [str(self.value)]

    @property
    def is_composite(self) -> bool:
        return len(self.values) > 1

    @property
    def display_label(self) -> str:
        return "/".join(self.label_texts)

    @classmethod
    def from_dict(cls, raw: dict) -> "FieldSpec":
        labels = _as_text_list(_pick(raw, "label_texts", "labelTexts", "label"))
        if not labels:
            raise ValueError(f"field without label_texts: {raw!r}")
        value = _pick(raw, "value", default="")
        if isinstance(value, (list, tuple)):
            value = [str(v) for v in value]
        else:
            value = str(value)
        control = str(_pick(raw, "control", "type", default="input")).strip().lower()
        return cls(
            label_texts=labels,
            value=value,
            optional=_as_bool(_pick(raw, "optional", default=False)),
            control="select" if control == "select" else "input",
        )


@dataclass
class RecordSpec:
    name: str
    title_labels: list[str]
    fields: list[FieldSpec]
    add_button_labels: list[str] = field(default_factory=list)
    first_form_field_label: Optional[str] = None
    save_labels: list[str] = field(default_factory=lambda: list(DEFAULT_SAVE_LABELS))

    @property
    def opens_form(self) -> bool:
        return bool(self.add_button_labels)

    @classmethod
    def from_dict(cls, name: str, raw: dict) -> "RecordSpec":
        title_labels = _as_text_list(_pick(raw, "title_labels", "titleLabels"))
        if not title_labels:
            raise ValueError(f"record '{name}' without title_labels")
        raw_fields = _pick(raw, "fields", default=[]) or []
        if not isinstance(raw_fields, list):
            raise ValueError(f"record '{name}' fields must be a list")
        first_label = _pick(raw, "first_form_field_label", "firstFormFieldLabel")
        save_labels = _as_text_list(_pick(raw, "save_labels", "saveLabels"))
        return cls(
            name=name,
            title_labels=title_labels,
            fields=[FieldSpec.from_dict(f) for f in raw_fields if isinstance(f, dict)],
            add_button_labels=_as_text_list(
                _pick(raw, "add_button_labels", "addButtonLabels")
            ),
            first_form_field_label=str(first_label).strip() if first_label else None,
            save_labels=save_labels or list(DEFAULT_SAVE_LABELS),
        )


@dataclass
class ResumeData:
    personal_info: Optional[RecordSpec] = None
    project_experiences: list[RecordSpec] = field(default_factory=list)
    internship_experiences: list[RecordSpec] = field(default_factory=list)

    def records(self) -> list[RecordSpec]:
        out: list[RecordSpec] = []
        if self.personal_info and self.personal_info.fields:
            out.append(self.personal_info)
        out.extend(self.project_experiences)
        out.extend(self.internship_experiences)
        return out

    @classmethod
    def from_dict(cls, raw: dict) -> "ResumeData":
        if not isinstance(raw, dict):
            raise ValueError("resume data must be a mapping")
        personal_raw = _pick(raw, "personal_info", "personalInfo")
        personal = (
            RecordSpec.from_dict("个人信息", personal_raw)
            if isinstance(personal_raw, dict)
            else None
        )
        projects = _pick(raw, "project_experiences", "projectExperiences", default=[])
        internships = _pick(
            raw, "internship_experiences", "internshipExperiences", default=[]
        )
        return cls(
            personal_info=personal,
            project_experiences=[
                RecordSpec.from_dict(f"项目经历 (第 {i} 个)", item)
                for i, item in enumerate(projects or [], start=1)
                if isinstance(item, dict)
            ],
            internship_experiences=[
                RecordSpec.from_dict(f"实习经历 (第 {i} 个)", item)
                for i, item in enumerate(internships or [], start=1)
                if isinstance(item, dict)
            ],
        )


@dataclass
class FormSession:
    """单条记录从“点击添加”到“保存/关闭”的临时状态，不做持久化。"""

    record_name: str
    container: Any = None
    container_path: Optional[str] = None
    filled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    saved: bool = False
