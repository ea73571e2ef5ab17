"""
Overlay Editor - an in-page textarea for live browser sessions.

Injects a small panel next to the clicked element. Save/Cancel buttons
carry ``data-pagepatch-action`` so the event bridge reports them as
EditorActionEvents; keys are reported while the panel is mounted.
"""

from typing import Any, TYPE_CHECKING
import logging

from selenium.common.exceptions import WebDriverException

if TYPE_CHECKING:
    from pagepatch.layers.sense.selenium_document import SeleniumDocument

logger = logging.getLogger(__name__)

MOUNT_SCRIPT = r"""
const target = arguments[0];
const text = arguments[1];
const cls = arguments[2];
const old = document.querySelector('.' + cls);
if (old) old.remove();

const rect = target.getBoundingClientRect();
let top = Math.max(10, rect.top + window.scrollY - 10);
let left = Math.max(10, rect.left + window.scrollX + rect.width + 8);
left = Math.min(left, window.scrollX + window.innerWidth - 260);
top = Math.min(top, window.scrollY + window.innerHeight - 140);

const panel = document.createElement('div');
panel.className = cls;
panel.style.cssText = 'position:absolute;z-index:2147483647;background:#111827;color:#fff;' +
    'padding:8px;border-radius:6px;box-shadow:0 4px 16px rgba(0,0,0,.4);width:240px;' +
    'font:13px sans-serif;top:' + top + 'px;left:' + left + 'px;';

const input = document.createElement('textarea');
input.className = cls + '-input';
input.value = text;
input.style.cssText = 'width:100%;min-height:60px;color:#111;box-sizing:border-box;';
panel.appendChild(input);

const actions = document.createElement('div');
actions.style.cssText = 'display:flex;gap:6px;justify-content:flex-end;margin-top:6px;';
for (const [action, label] of [['save', 'Save'], ['cancel', 'Cancel']]) {
    const button = document.createElement('button');
    button.type = 'button';
    button.textContent = label;
    button.setAttribute('data-pagepatch-action', action);
    actions.appendChild(button);
}
panel.appendChild(actions);
document.body.appendChild(panel);
input.focus();
"""


class OverlayEditor:
    """EditorSurface rendered inside the page through the Selenium document."""

    def __init__(self, document: "SeleniumDocument"):
        self.document = document
        self.driver = document.driver
        self.editor_class = document.editor_class

    def mount(self, target: Any, initial_text: str) -> None:
        self.driver.execute_script(MOUNT_SCRIPT, target, initial_text, self.editor_class)
        self.document.set_editing(True)

    def unmount(self) -> None:
        try:
            self.document.set_editing(False)
            self.driver.execute_script(
                "const p = document.querySelector('.' + arguments[0]); if (p) p.remove();",
                self.editor_class,
            )
        except WebDriverException as e:
            logger.debug(f"[OverlayEditor] Unmount on a gone page: {e}")

    def current_value(self) -> str:
        value = self.driver.execute_script(
            "const i = document.querySelector('.' + arguments[0] + '-input'); return i ? i.value : null;",
            self.editor_class,
        )
        return value if value is not None else ""
