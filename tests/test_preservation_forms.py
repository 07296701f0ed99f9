from hmrkit.preservation.dom import parse_html
from hmrkit.preservation.forms import (
    STANDALONE_KEY,
    QueuedFrameScheduler,
    capture_forms,
    capture_scroll,
    restore_forms,
    restore_scroll,
)

PAGE = """<html><body>
<form id="profile">
  <input name="first" value="">
  <input id="last" value="">
  <input type="checkbox" name="subscribe">
</form>
<form>
  <input value="">
</form>
<input name="search" value="">
<div id="panel" class="scroller"></div>
</body></html>"""


def _type_into(document):
    first, last, subscribe = document.get_element_by_id("profile").elements("input")
    first.value = "Ada"
    last.value = "Lovelace"
    subscribe.checked = True
    document.forms()[1].elements("input")[0].value = "anonymous"
    document.fields()[-1].value = "engines"


def test_capture_forms_keys_by_name_id_then_position():
    document = parse_html(PAGE)
    _type_into(document)

    snapshot = capture_forms(document)

    assert snapshot == {
        "profile": {"first": "Ada", "last": "Lovelace", "subscribe": True},
        "form-1": {"input-1-0": "anonymous"},
        STANDALONE_KEY: {"search": "engines"},
    }


def test_restore_forms_after_reset_brings_back_every_value():
    document = parse_html(PAGE)
    _type_into(document)
    snapshot = capture_forms(document)

    document.root.reset()
    assert document.fields()[0].value == ""

    restored = restore_forms(document, snapshot)

    assert restored == 5
    assert capture_forms(document) == snapshot


def test_restore_forms_after_body_replacement():
    document = parse_html(PAGE)
    _type_into(document)
    snapshot = capture_forms(document)

    document.replace_body(PAGE.split("<body>")[1].split("</body>")[0])
    restore_forms(document, snapshot)

    first, last, subscribe = document.get_element_by_id("profile").elements("input")
    assert (first.value, last.value, subscribe.checked) == ("Ada", "Lovelace", True)


def test_restore_forms_skips_missing_forms_and_fields():
    document = parse_html("<body><form id='other'><input name='x' value='1'></form></body>")

    restored = restore_forms(document, {"profile": {"first": "Ada"}, "other": {"missing": "v"}, "form-9": {"a": "b"}})

    assert restored == 0
    assert document.fields()[0].value == "1"


def test_scroll_is_restored_on_the_next_frame_only():
    document = parse_html(PAGE)
    panel = document.get_element_by_id("panel")
    panel.scroll_height, panel.client_height, panel.scroll_top = 900, 300, 120
    document.scroll_to(0, 400)

    snapshot = capture_scroll(document)
    assert [entry.selector for entry in snapshot.elements] == ["#panel"]

    document.scroll_to(0, 0)
    panel.scroll_top = 0
    scheduler = QueuedFrameScheduler()
    restore_scroll(document, snapshot, scheduler)

    assert document.scroll_y == 0
    assert len(scheduler) == 1

    assert scheduler.flush() == 1
    assert document.scroll_y == 400
    assert panel.scroll_top == 120


def test_capture_scroll_ignores_elements_without_overflow():
    document = parse_html(PAGE)
    panel = document.get_element_by_id("panel")
    panel.scroll_top = 50

    assert capture_scroll(document).elements == []
