from __future__ import annotations

import pytest

from autoresume.core.dom_driver import select_all_modifier
from autoresume.core.errors import ActivationFailed, NotVisible
from autoresume.core.field_fill import (
    FillState,
    activate,
    fill_field,
    fill_node,
    select_dropdown_option,
)
from autoresume.core.records import FieldSpec
from fake_dom import FakeDriver, LogRecorder, document, el


def _labelled(label_text, *controls):
    label = el("span", label_text, (100, 100, 100, 20))
    inner = el("div", "", None, label, *controls)
    outer = el("div", "", None, el("div", "", None, el("div", "", None, inner)))
    return outer


def test_fill_node_twice_keeps_only_latest_value():
    box = el("input", "", (100, 140, 200, 30), type="text")
    driver = FakeDriver(document(box))

    first = fill_node(driver, box, "A")
    second = fill_node(driver, box, "B")

    assert first.ok and second.ok
    assert box.value == "B"
    modifier = select_all_modifier()
    assert driver.keys.count(f"down:{modifier}") == 1
    assert driver.keys[-2:] == ["Enter", "Tab"]


def test_fill_node_replaces_prefilled_content():
    box = el("textarea", "", (100, 140, 400, 80), value="旧的描述内容")
    driver = FakeDriver(document(box))
    log = LogRecorder()

    outcome = fill_node(driver, box, "新的描述内容", log_fn=log)

    assert outcome.state == FillState.COMMITTED
    assert box.value == "新的描述内容"
    assert any("已清空现有内容" in m for m in log.messages("info"))


def test_activation_falls_back_to_coordinate_click():
    box = el("input", "", (100, 140, 200, 30), type="text")
    box.click_error = RuntimeError("element is detached")
    driver = FakeDriver(document(box))
    log = LogRecorder()

    outcome = fill_node(driver, box, "张三", log_fn=log)

    assert outcome.ok
    assert driver.mouse_clicks == [(200, 155)]
    assert box.value == "张三"
    assert any("无法滚动或点击节点" in m for m in log.messages("warn"))


def test_activation_failure_stops_before_focus():
    box = el("input", "", (100, 140, 200, 30), type="text")
    box.click_error = RuntimeError("element is detached")
    driver = FakeDriver(document(box))
    driver.mouse_error = RuntimeError("mouse unavailable")

    with pytest.raises(ActivationFailed):
        activate(driver, box)

    outcome = fill_node(driver, box, "张三")
    assert not outcome.ok
    assert outcome.state == FillState.IDLE
    assert outcome.error.startswith("ActivationFailed")
    assert box.value is None


def test_activate_rejects_unrendered_node():
    box = el("input", "", None, type="text")
    driver = FakeDriver(document(box))
    with pytest.raises(NotVisible):
        activate(driver, box)


def test_fill_node_records_state_reached_on_typing_error():
    class BrokenKeyboard(FakeDriver):
        def type_text(self, text, *, delay_ms=0):
            raise RuntimeError("keyboard gone")

    box = el("input", "", (100, 140, 200, 30), type="text")
    outcome = fill_node(BrokenKeyboard(document(box)), box, "x")
    assert outcome.state == FillState.CLEARED
    assert outcome.error == "keyboard gone"


def test_composite_field_continues_from_tab_focus():
    year = el("input", "", (50, 140, 40, 20), type="text")
    month = el("input", "", (210, 140, 40, 20), type="text")
    driver = FakeDriver(document(_labelled("开始时间", year, month)))

    result = fill_field(driver, FieldSpec(label_texts=["开始时间"], value=["2024", "06"]))

    assert result.ok
    assert [p.value for p in result.parts] == ["2024", "06"]
    assert (year.value, month.value) == ("2024", "06")
    assert driver.keys.count("Tab") == 2


def test_composite_field_reports_lost_focus():
    year = el("input", "", (50, 140, 40, 20), type="text")
    driver = FakeDriver(document(_labelled("开始时间", year)))
    log = LogRecorder()

    result = fill_field(
        driver, FieldSpec(label_texts=["开始时间"], value=["2024", "06"]), log_fn=log
    )

    assert not result.ok
    assert result.error == "focus_lost"
    assert len(result.parts) == 1 and result.parts[0].ok
    assert year.value == "2024"


def test_label_alternatives_are_tried_in_order():
    box = el("input", "", (210, 100, 200, 20), type="text")
    driver = FakeDriver(document(_labelled("生日", box)))

    result = fill_field(driver, FieldSpec(label_texts=["出生日期", "生日"], value="2000-01-01"))

    assert result.ok
    assert result.matched_label == "生日"
    assert result.via == "structure"
    assert box.value == "2000-01-01"


def test_unknown_label_is_skipped():
    driver = FakeDriver(document(_labelled("姓名", el("input", "", (210, 100, 200, 20), type="text"))))
    log = LogRecorder()

    result = fill_field(driver, FieldSpec(label_texts=["籍贯"], value="浙江"), log_fn=log)

    assert not result.ok
    assert result.error == "not_found"
    assert result.parts == []
    assert any("跳过此字段" in m for m in log.messages("warn"))


def test_native_select_uses_option_label():
    select = el("select", "", (210, 100, 200, 30), el("option", "本科"), el("option", "硕士"))
    driver = FakeDriver(document(_labelled("学历", select)))

    result = fill_field(driver, FieldSpec(label_texts=["学历"], value="硕士", control="select"))

    assert result.ok
    assert select.value == "硕士"
    assert driver.clicks == []


def test_custom_dropdown_opens_and_clicks_option():
    trigger = el("input", "", (210, 100, 200, 30), type="text", readonly="readonly")
    bachelor = el("li", "本科", None, role="option")
    master = el("li", "硕士", None, role="option")
    menu = el("ul", "", None, bachelor, master)

    def open_menu(_driver):
        menu.box = (210, 135, 200, 80)
        bachelor.box = (210, 140, 200, 30)
        master.box = (210, 175, 200, 30)

    def pick(_driver):
        trigger.value = "本科"

    trigger.on_click = open_menu
    bachelor.on_click = pick
    driver = FakeDriver(document(_labelled("学历", trigger), menu))

    log = LogRecorder()
    outcome = select_dropdown_option(driver, trigger, "本科", log_fn=log)

    assert outcome.ok
    assert trigger.value == "本科"
    assert driver.mouse_clicks == [(310, 155)]
    assert driver.keys[-1] == "Enter"
    assert any("找到选项 \"本科\"" in m and "候选" in m for m in log.messages("info"))


def test_custom_dropdown_missing_option():
    trigger = el("input", "", (210, 100, 200, 30), type="text")
    driver = FakeDriver(document(trigger))
    outcome = select_dropdown_option(driver, trigger, "博士")
    assert not outcome.ok
    assert outcome.state == FillState.FOCUSED
    assert outcome.error.startswith("NotFound")
