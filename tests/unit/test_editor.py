import pytest
from unittest.mock import AsyncMock, MagicMock

from pagepatch.core import messaging
from pagepatch.layers.action.editor import EditController, EditState, MemoryEditor
from pagepatch.layers.action.reconciler import Reconciler
from pagepatch.layers.sense.document import (
    ClickEvent,
    EditorActionEvent,
    KeyEvent,
    PointerDownEvent,
)
from pagepatch.layers.sense.html_document import HtmlDocument
from pagepatch.layers.storage.backends import MemoryBackend
from pagepatch.layers.storage.store import OverrideStore

KEY = "https://example.com/"
HERO = 'span[data-testid="hero"]'


@pytest.fixture
def setup():
    doc = HtmlDocument(
        '<html><head></head><body><div><span data-testid="hero">  Hello </span>'
        '<p id="other">Other</p></div></body></html>'
    )
    store = OverrideStore(MemoryBackend())
    reconciler = Reconciler(doc, store, KEY)
    editor = MemoryEditor()
    controller = EditController(doc, store, reconciler, editor=editor)
    yield doc, store, reconciler, editor, controller
    reconciler.stop_observing()


def test_clicks_pass_through_while_disabled(setup):
    doc, _, _, editor, controller = setup

    assert controller.handle_click(ClickEvent(target=doc.query("span"))) is False
    assert controller.state == EditState.IDLE
    assert editor.mount_count == 0


def test_click_opens_editor_with_trimmed_text(setup):
    doc, _, _, editor, controller = setup
    controller.enable()
    span = doc.query("span")

    assert controller.handle_click(ClickEvent(target=span)) is True
    assert controller.state == EditState.EDITING
    assert editor.mounted and editor.target is span
    assert editor.value == "Hello"
    assert controller.session.fallback_selector == HERO


def test_second_click_while_editing_is_swallowed(setup):
    doc, _, _, editor, controller = setup
    controller.enable()
    span = doc.query("span")
    controller.handle_click(ClickEvent(target=span))

    assert controller.handle_click(ClickEvent(target=doc.query("#other"))) is True
    assert controller.session.target is span
    assert editor.mount_count == 1


def test_clicks_inside_editor_are_not_intercepted(setup):
    doc, _, _, _, controller = setup
    controller.enable()

    assert controller.handle_click(ClickEvent(target=doc.query("span"), inside_editor=True)) is False
    assert controller.handle_click(ClickEvent(target=None)) is False
    assert controller.state == EditState.IDLE


@pytest.mark.asyncio
async def test_commit_persists_and_patches_in_place(setup):
    doc, store, reconciler, editor, controller = setup
    controller.enable()
    span = doc.query("span")
    controller.handle_click(ClickEvent(target=span))

    record = await controller.commit("World")

    assert record.selector == HERO
    assert record.text == "World"
    assert doc.get_text(span) == "World"
    assert [(o.selector, o.text) for o in await store.load(KEY)] == [(HERO, "World")]
    assert controller.state == EditState.IDLE
    assert controller.session is None
    assert editor.unmount_count == 1
    assert reconciler.observing


@pytest.mark.asyncio
async def test_commit_uses_editor_value_by_default(setup):
    doc, store, _, editor, controller = setup
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("#other")))
    editor.value = "Changed"

    record = await controller.commit()

    assert (record.selector, record.text) == ("#other", "Changed")


@pytest.mark.asyncio
async def test_commit_falls_back_to_selector_captured_at_open(setup):
    doc, store, reconciler, editor, _ = setup
    synthesizer = MagicMock()
    synthesizer.synthesize.side_effect = ["#captured", ""]
    controller = EditController(doc, store, reconciler, editor=editor, synthesizer=synthesizer)
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))

    record = await controller.commit("World")

    assert record.selector == "#captured"


@pytest.mark.asyncio
async def test_commit_after_node_removed_still_saves(setup):
    doc, store, _, _, controller = setup
    controller.enable()
    span = doc.query("span")
    controller.handle_click(ClickEvent(target=span))
    doc.remove(span)

    record = await controller.commit("World")

    assert record.selector == HERO
    assert doc.get_text(span).strip() == "Hello"
    assert len(await store.load(KEY)) == 1


@pytest.mark.asyncio
async def test_commit_patches_node_rendered_while_editing(setup):
    doc, store, reconciler, _, controller = setup
    controller.enable()
    span = doc.query("span")
    controller.handle_click(ClickEvent(target=span))
    doc.remove(span)
    doc.insert_html("div", '<span data-testid="hero">Hello</span>')

    await controller.commit("World")

    live = doc.query(HERO)
    assert live is not span
    assert doc.get_text(live) == "World"
    assert live["style"] == "color: inherit !important;"
    assert reconciler.last_result.applied == 1
    assert not doc.has_style(reconciler.config.mask_style_id)


@pytest.mark.asyncio
async def test_commit_without_page_key_saves_nothing(setup):
    doc, store, reconciler, editor, controller = setup
    reconciler.set_page_key("")
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))

    assert await controller.commit("World") is None
    assert controller.state == EditState.IDLE
    assert editor.unmount_count == 1


@pytest.mark.asyncio
async def test_commit_outside_editing_is_a_no_op(setup):
    _, store, _, _, controller = setup

    assert await controller.commit("World") is None
    assert await store.load(KEY) == []


def test_cancel_tears_down_once(setup):
    doc, _, _, editor, controller = setup
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))

    controller.cancel()
    controller.cancel()

    assert controller.state == EditState.IDLE
    assert editor.unmount_count == 1
    assert doc.get_text(doc.query("span")) == "  Hello "


@pytest.mark.asyncio
async def test_escape_cancels(setup):
    doc, store, _, editor, controller = setup
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))

    assert await controller.handle_key(KeyEvent(key="Escape")) is True
    assert controller.state == EditState.IDLE
    assert await store.load(KEY) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("modifiers", [{"ctrl": True}, {"meta": True}])
async def test_modified_enter_commits(setup, modifiers):
    doc, store, _, editor, controller = setup
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))
    editor.value = "World"

    assert await controller.handle_key(KeyEvent(key="Enter", **modifiers)) is True
    assert [o.text for o in await store.load(KEY)] == ["World"]


@pytest.mark.asyncio
async def test_plain_enter_keeps_editing(setup):
    doc, _, _, _, controller = setup
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))

    assert await controller.handle_key(KeyEvent(key="Enter")) is False
    assert controller.state == EditState.EDITING


def test_pointer_down_outside_editor_cancels(setup):
    doc, _, _, _, controller = setup
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))

    assert controller.handle_pointer_down(PointerDownEvent(inside_editor=True)) is False
    assert controller.state == EditState.EDITING
    assert controller.handle_pointer_down(PointerDownEvent()) is True
    assert controller.state == EditState.IDLE


@pytest.mark.asyncio
async def test_editor_buttons(setup):
    doc, store, _, editor, controller = setup
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))
    assert await controller.handle_editor_action(EditorActionEvent(action="cancel")) is True
    assert await store.load(KEY) == []

    controller.handle_click(ClickEvent(target=doc.query("span")))
    editor.value = "Saved"
    assert await controller.handle_editor_action(EditorActionEvent(action="save")) is True
    assert [o.text for o in await store.load(KEY)] == ["Saved"]


def test_disable_while_editing_cancels(setup):
    doc, _, _, editor, controller = setup
    controller.enable()
    controller.handle_click(ClickEvent(target=doc.query("span")))

    controller.disable()

    assert not controller.enabled
    assert controller.state == EditState.IDLE
    assert editor.unmount_count == 1


def test_enable_and_disable_toggle_interception():
    document = MagicMock()
    controller = EditController(document, MagicMock(), MagicMock(), editor=MemoryEditor())

    controller.enable()
    controller.enable()
    controller.disable()

    assert [c.args for c in document.set_interception.call_args_list] == [(True,), (False,)]


@pytest.mark.asyncio
async def test_dispatch_routes_events(setup):
    doc, _, _, _, controller = setup
    controller.enable()

    assert await controller.dispatch(ClickEvent(target=doc.query("span"))) is True
    assert controller.state == EditState.EDITING
    assert await controller.dispatch(KeyEvent(key="Escape")) is True
    assert controller.state == EditState.IDLE
    assert await controller.dispatch("not an event") is False


@pytest.mark.asyncio
async def test_toggle_and_state_messages(setup):
    _, _, _, _, controller = setup

    assert await controller.handle_message(messaging.get_state_message()) == {
        "type": messaging.STATE, "enabled": False,
    }
    assert await controller.handle_message(messaging.toggle_message(True)) == {
        "type": messaging.TOGGLE_ACK, "enabled": True,
    }
    assert controller.get_state() == {"enabled": True}
    assert await controller.handle_message(messaging.toggle_message(False)) == {
        "type": messaging.TOGGLE_ACK, "enabled": False,
    }


@pytest.mark.asyncio
async def test_reapply_message_runs_a_pass(setup):
    doc, store, reconciler, _, controller = setup
    await store.save(KEY, "#other", "Patched")

    assert await controller.handle_message(messaging.reapply_message()) == {"ok": True}
    assert doc.get_text(doc.query("#other")) == "Patched"


@pytest.mark.asyncio
async def test_reapply_failure_still_answers():
    reconciler = MagicMock()
    reconciler.apply_all = AsyncMock(side_effect=RuntimeError("gone"))
    controller = EditController(MagicMock(), MagicMock(), reconciler, editor=MemoryEditor())

    assert await controller.handle_message(messaging.reapply_message()) == {"ok": True}


@pytest.mark.asyncio
async def test_unknown_messages_get_no_answer(setup):
    _, _, _, _, controller = setup

    assert await controller.handle_message({"type": "SOMETHING_ELSE"}) is None
    assert await controller.handle_message("PAGEPATCH_TOGGLE") is None
    assert not controller.enabled
