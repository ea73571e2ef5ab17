"""
Page Session - the runtime that keeps overrides live in a real browser.

Wires a SeleniumDocument, the override store, the reconciler and the edit
controller together, then runs a single cooperative loop:

    open URL -> install bridge -> reconciler.init() -> [edit mode] -> poll

Each tick drains page events into the controller and answers queued
management requests. When the bridge disappears the page was reloaded or
navigated; the session re-keys, re-installs and re-initialises.
"""

from dataclasses import dataclass
from typing import Any, Optional, TYPE_CHECKING
import asyncio
import logging

from selenium.common.exceptions import WebDriverException

from pagepatch.core.config import PagePatchConfig
from pagepatch.core.messaging import MessageChannel
from pagepatch.layers.action.editor import EditController
from pagepatch.layers.action.overlay import OverlayEditor
from pagepatch.layers.action.reconciler import Reconciler
from pagepatch.layers.sense.selenium_document import SeleniumDocument
from pagepatch.layers.storage.store import OverrideStore, get_page_key

if TYPE_CHECKING:
    from selenium.webdriver.remote.webdriver import WebDriver

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    """Summary of a finished PageSession run."""
    url: str
    page_loads: int
    ticks: int
    events: int
    error: Optional[str] = None


class PageSession:
    """
    Drive one browser tab with PagePatch attached.

    Example:
        >>> session = PageSession(driver, OverrideStore(JsonFileBackend(path)))
        >>> asyncio.run(session.run("https://example.com", edit=True))
    """

    def __init__(
        self,
        driver: "WebDriver",
        store: OverrideStore,
        config: Optional[PagePatchConfig] = None,
    ):
        self.driver = driver
        self.store = store
        self.config = config or PagePatchConfig()

        self.document = SeleniumDocument(driver, editor_class=self.config.editor_class)
        self.reconciler = Reconciler(self.document, store, page_key="", config=self.config)
        self.controller = EditController(
            self.document,
            store,
            self.reconciler,
            editor=OverlayEditor(self.document),
            config=self.config,
        )
        self.channel = MessageChannel()

        self.page_loads = 0
        self.ticks = 0
        self.events = 0
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    async def attach(self) -> None:
        """(Re)attach to whatever page the browser currently shows."""
        url = self.driver.current_url
        self.reconciler.set_page_key(get_page_key(url))
        self.controller.cancel()
        self.document.install()
        if self.controller.enabled:
            self.document.set_interception(True)
        self.page_loads += 1
        logger.info(f"[PageSession] Attached to {url}")
        await self.reconciler.init()

    async def tick(self) -> bool:
        """One poll step. Returns False once the browser is gone."""
        self.ticks += 1
        try:
            batch = self.document.pump()
            if batch is None:
                await self.attach()
                batch = []
            for event in batch:
                self.events += 1
                await self.controller.dispatch(event)
        except WebDriverException as e:
            logger.info(f"[PageSession] Browser unavailable, ending session: {e.msg or e}")
            return False
        await self.channel.serve(self.controller.handle_message)
        return True

    async def run(
        self,
        url: Optional[str] = None,
        edit: bool = False,
        max_ticks: Optional[int] = None,
    ) -> SessionResult:
        """Open ``url`` (if given) and keep overrides applied until stopped."""
        error = None
        start_url = url or ""
        try:
            if url:
                self.driver.get(url)
            if edit:
                self.controller.enable()
            await self.attach()

            while not self._stopped:
                if max_ticks is not None and self.ticks >= max_ticks:
                    break
                if not await self.tick():
                    break
                await asyncio.sleep(self.config.poll_interval_seconds)
        except WebDriverException as e:
            error = e.msg or str(e)
            logger.warning(f"[PageSession] Session aborted: {error}")
        finally:
            self.reconciler.stop_observing()
            self.channel.drain_unanswered()

        return SessionResult(
            url=start_url,
            page_loads=self.page_loads,
            ticks=self.ticks,
            events=self.events,
            error=error,
        )

    async def request(self, message: Any, timeout: Optional[float] = None) -> Optional[dict]:
        """Send a management message to this session's controller."""
        return await self.channel.request(message, timeout=timeout)
