from __future__ import annotations

import json

from autoresume.core.candidates import INPUT_SELECTOR, TITLE_SELECTOR
from autoresume.core.form_lifecycle import (
    autofill_resume,
    fill_record,
    resolve_form_container,
    snapshot_container_paths,
)
from autoresume.core.records import FieldSpec, RecordSpec, ResumeData
from autoresume.core.settings import ResolverSettings
from fake_dom import FakeDriver, LogRecorder, document, el

FAST = ResolverSettings(container_timeout_ms=1000, poll_interval_ms=500)


def nested(levels, *leaves):
    node = el("div", "", None, *leaves)
    for _ in range(levels - 1):
        node = el("div", "", None, node)
    return node


def project_page(*, with_save=True):
    """区块标题 + 添加按钮；点击添加后在 body 下挂出一个对话框表单。"""
    title = el("h3", "项目经历", (100, 200, 80, 20))
    add = el("button", "添加", (300, 200, 60, 20))
    root = document(nested(4, title, add))
    body = root.children[0]

    name_input = el("input", "", (520, 240, 300, 30), type="text")
    year = el("input", "", (520, 300, 60, 30), type="text")
    month = el("input", "", (600, 300, 60, 30), type="text")
    # 每个表单项自带一层包裹，标签与自己的输入框共享最深的公共祖先
    dialog = el(
        "div",
        "",
        (400, 200, 600, 500),
        nested(
            2,
            el("div", "", None, el("label", "项目名称", (420, 240, 80, 20)), name_input),
            el("div", "", None, el("label", "项目时间", (420, 300, 80, 20)), year, month),
        ),
        role="dialog",
    )
    if with_save:
        save = el("button", "保存", (800, 650, 60, 30))
        save.on_click = lambda _d: dialog.remove()
        dialog.add(save)
    add.on_click = lambda _d: body.add(dialog)
    return root, dialog, name_input, year, month


def project_record(**overrides):
    raw = {
        "title_labels": ["项目经历"],
        "add_button_labels": ["添加项目", "添加"],
        "first_form_field_label": "项目名称",
        "fields": [
            {"label_texts": ["项目名称"], "value": "简历自动填写工具"},
            {"label_texts": ["项目时间"], "value": ["2024", "06"]},
        ],
    }
    raw.update(overrides)
    return RecordSpec.from_dict("项目经历 (第 1 个)", raw)


def test_fill_record_opens_form_fills_and_saves(isolated_trace):
    root, dialog, name_input, year, month = project_page()
    driver = FakeDriver(root)
    log = LogRecorder()

    outcome = fill_record(driver, project_record(), settings=FAST, log_fn=log)

    assert outcome.completed
    assert outcome.title_found and outcome.form_opened
    assert outcome.container_path is not None
    assert outcome.filled == ["项目名称", "项目时间"]
    assert outcome.failed == []
    assert outcome.saved and not outcome.escaped
    assert name_input.value == "简历自动填写工具"
    assert (year.value, month.value) == ("2024", "06")
    assert dialog.parent is None
    kinds = [json.loads(line)["kind"] for line in isolated_trace.read_text(encoding="utf-8").splitlines()]
    assert "container" in kinds
    assert any("成功点击保存/确定按钮" in m for m in log.messages("info"))


def test_fill_record_presses_escape_without_save_button():
    root, dialog, name_input, _, _ = project_page(with_save=False)
    driver = FakeDriver(root)
    log = LogRecorder()

    outcome = fill_record(driver, project_record(), settings=FAST, log_fn=log)

    assert outcome.completed
    assert not outcome.saved
    assert outcome.escaped
    assert driver.keys[-1] == "Escape"
    assert name_input.value == "简历自动填写工具"
    assert any("Escape" in m for m in log.messages("warn"))


def test_fill_record_skips_when_title_missing():
    driver = FakeDriver(document(el("h3", "教育经历", (100, 100, 80, 20))))
    log = LogRecorder()

    outcome = fill_record(driver, project_record(), settings=FAST, log_fn=log)

    assert outcome.error == "title_not_found"
    assert not outcome.title_found
    assert outcome.fields == []
    assert log.messages("error")


def test_fill_record_skips_when_add_button_missing():
    title = el("h3", "项目经历", (100, 200, 80, 20))
    driver = FakeDriver(document(nested(4, title, el("button", "删除", (300, 200, 60, 20)))))

    outcome = fill_record(driver, project_record(), settings=FAST)

    assert outcome.title_found
    assert outcome.error == "add_button_failed"
    assert not outcome.form_opened
    assert driver.clicks == []


def test_personal_info_fills_in_place_and_reports_field_failures():
    name_input = el("input", "", (220, 140, 200, 30), type="text")
    page = nested(
        4,
        el("h2", "个人信息", (100, 100, 80, 20)),
        el("span", "姓名", (100, 140, 60, 20)),
        name_input,
    )
    driver = FakeDriver(document(page))
    log = LogRecorder()
    record = RecordSpec(
        name="个人信息",
        title_labels=["个人信息"],
        fields=[
            FieldSpec(label_texts=["姓名"], value="张三"),
            FieldSpec(label_texts=["微信号"], value="zhangsan", optional=True),
            FieldSpec(label_texts=["邮箱"], value="a@example.com"),
        ],
    )

    outcome = fill_record(driver, record, settings=FAST, log_fn=log)

    assert outcome.completed
    assert not outcome.form_opened and not outcome.saved and not outcome.escaped
    assert outcome.filled == ["姓名"]
    assert outcome.failed == ["微信号", "邮箱"]
    assert name_input.value == "张三"
    assert any("可选字段 \"微信号\"" in m for m in log.messages("info"))
    assert any("非可选字段 \"邮箱\"" in m for m in log.messages("warn"))
    assert "Escape" not in driver.keys


def test_autofill_resume_continues_after_failed_record():
    name_input = el("input", "", (220, 140, 200, 30), type="text")
    page = nested(
        4,
        el("h2", "个人信息", (100, 100, 80, 20)),
        el("span", "姓名", (100, 140, 60, 20)),
        name_input,
    )
    driver = FakeDriver(document(page))
    log = LogRecorder()
    resume = ResumeData.from_dict(
        {
            "personal_info": {
                "title_labels": ["个人信息"],
                "fields": [{"label_texts": ["姓名"], "value": "张三"}],
            },
            "project_experiences": [
                {
                    "title_labels": ["项目经历"],
                    "add_button_labels": ["添加"],
                    "fields": [{"label_texts": ["项目名称"], "value": "x"}],
                }
            ],
        }
    )

    outcomes = autofill_resume(driver, resume, settings=FAST, log_fn=log)

    assert [o.record_name for o in outcomes] == ["个人信息", "项目经历 (第 1 个)"]
    assert outcomes[0].completed and outcomes[0].filled == ["姓名"]
    assert outcomes[1].error == "title_not_found"
    assert any("继续下一条记录" in m for m in log.messages("warn"))


def test_autofill_resume_with_no_records():
    log = LogRecorder()
    assert autofill_resume(FakeDriver(document()), ResumeData(), log_fn=log) == []
    assert log.messages("warn")


def test_container_resolution_skips_preexisting_generic_div(isolated_trace):
    field_input = el("input", "", (220, 140, 200, 30), type="text")
    wrapper = el(
        "div",
        "",
        (0, 0, 1920, 1080),
        nested(4, el("label", "项目名称", (100, 140, 80, 20)), field_input),
    )
    driver = FakeDriver(document(wrapper))

    known = snapshot_container_paths(driver)
    assert resolve_form_container(driver, "项目名称", known_paths=known, settings=FAST) is None
    assert driver.waited == FAST.container_timeout_ms
    last = json.loads(isolated_trace.read_text(encoding="utf-8").splitlines()[-1])
    assert (last["kind"], last["outcome"]) == ("container", "not_found")

    assert resolve_form_container(driver, "项目名称", settings=FAST) is wrapper


def test_container_resolution_prefers_dialog_over_generic_div():
    root, dialog, _, _, _ = project_page()
    root.children[0].add(dialog)
    driver = FakeDriver(root)
    assert resolve_form_container(driver, "项目名称", settings=FAST) is dialog


class BrokenContextDriver(FakeDriver):
    """页面导航中途销毁执行上下文：指定选择器的前 N 次查询直接抛错。"""

    def __init__(self, root, failures):
        super().__init__(root)
        self.failures = dict(failures)

    def query_all(self, selector, root=None):
        if self.failures.get(selector, 0) > 0:
            self.failures[selector] -= 1
            raise RuntimeError("Execution context was destroyed")
        return super().query_all(selector, root)


def _personal_page():
    name_input = el("input", "", (220, 140, 200, 30), type="text")
    page = nested(
        4,
        el("h2", "个人信息", (100, 100, 80, 20)),
        el("span", "真实姓名", (100, 140, 60, 20)),
        name_input,
    )
    return document(page), name_input


def test_field_lookup_error_falls_through_to_next_label():
    root, name_input = _personal_page()
    driver = BrokenContextDriver(root, {INPUT_SELECTOR: 1})
    log = LogRecorder()
    record = RecordSpec(
        name="个人信息",
        title_labels=["个人信息"],
        fields=[FieldSpec(label_texts=["真实姓名", "姓名"], value="张三")],
    )

    outcome = fill_record(driver, record, settings=FAST, log_fn=log)

    assert outcome.completed
    assert outcome.fields[0].matched_label == "姓名"
    assert name_input.value == "张三"
    assert any("Execution context was destroyed" in m for m in log.messages("warn"))


def test_autofill_resume_absorbs_unexpected_record_errors():
    root, name_input = _personal_page()
    driver = BrokenContextDriver(root, {TITLE_SELECTOR: 1, INPUT_SELECTOR: 1})
    log = LogRecorder()
    resume = ResumeData.from_dict(
        {
            "personal_info": {
                "title_labels": ["个人信息"],
                "fields": [{"label_texts": ["真实姓名"], "value": "张三"}],
            },
            "project_experiences": [
                {
                    "title_labels": ["个人信息"],
                    "fields": [{"label_texts": ["真实姓名"], "value": "李四"}],
                }
            ],
        }
    )

    outcomes = autofill_resume(driver, resume, settings=FAST, log_fn=log)

    assert len(outcomes) == 2
    assert outcomes[0].error == "RuntimeError: Execution context was destroyed"
    assert outcomes[1].completed
    assert outcomes[1].failed == ["真实姓名"]
    assert name_input.value is None
    assert any("填充时发生异常" in m for m in log.messages("error"))


def test_escape_failure_does_not_abort_record():
    root, dialog, name_input, _, _ = project_page(with_save=False)
    driver = FakeDriver(root)

    def broken_press(key):
        if key == "Escape":
            raise RuntimeError("Target closed")
        FakeDriver.press(driver, key)

    driver.press = broken_press
    log = LogRecorder()

    outcome = fill_record(driver, project_record(), settings=FAST, log_fn=log)

    assert outcome.completed
    assert not outcome.saved and not outcome.escaped
    assert name_input.value == "简历自动填写工具"
    assert any("Escape 也失败" in m for m in log.messages("error"))
