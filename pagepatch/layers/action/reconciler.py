"""
Reconciler - keep persisted overrides applied to a live document.

One pass matches every stored override against the tree, rewrites the
text of the elements it finds, and masks the selectors it does not find
so their original text never flashes once they render. Body mutations
schedule further passes through a single cancellable delayed task.
"""

from dataclasses import dataclass, field
from typing import List, Optional, TYPE_CHECKING
import asyncio
import logging

from pagepatch.core.config import PagePatchConfig
from pagepatch.layers.sense.document import SelectorError

if TYPE_CHECKING:
    from pagepatch.layers.sense.document import MutationSubscription, PageDocument
    from pagepatch.layers.storage.store import Override, OverrideStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Counts from one reconciliation pass."""
    applied: int = 0
    skipped: int = 0
    unresolved: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"applied": self.applied, "skipped": self.skipped}


def mask_css(selectors: List[str]) -> str:
    return "\n".join(
        f"{s}, {s} * {{ color: transparent !important; }}" for s in selectors
    )


class Reconciler:
    """
    Apply, mask and re-apply overrides for one page.

    Lifecycle:
        init() -> mask unresolved, apply once, reveal, start observing
        schedule() -> one delayed pass per burst of mutations
        stop_observing() -> disconnect and cancel any pending pass

    Example:
        >>> reconciler = Reconciler(document, store, page_key)
        >>> await reconciler.init()
        >>> reconciler.last_result.applied
        1
    """

    def __init__(
        self,
        document: "PageDocument",
        store: "OverrideStore",
        page_key: str,
        config: Optional[PagePatchConfig] = None,
    ):
        self.document = document
        self.store = store
        self.page_key = page_key
        self.config = config or PagePatchConfig()

        self.passes = 0
        self.last_result: Optional[ReconcileResult] = None
        self._subscription: Optional["MutationSubscription"] = None
        self._pending: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None

    @property
    def observing(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def set_page_key(self, page_key: str) -> None:
        """Retarget after navigation. Observation is dropped; call init() again."""
        self.stop_observing()
        self.page_key = page_key

    # ---- passes -----------------------------------------------------------

    async def apply_all(self) -> ReconcileResult:
        """Run one reconciliation pass."""
        overrides = await self.store.load(self.page_key)
        self.passes += 1

        result = ReconcileResult()
        for override in overrides:
            if self._apply_one(override):
                result.applied += 1
            else:
                result.skipped += 1
                result.unresolved.append(override.selector)

        try:
            self._write_mask(result.unresolved)
        except Exception as e:
            logger.warning(f"[Reconciler] Could not update mask: {e}")

        self.last_result = result
        logger.debug(
            f"[Reconciler] Pass {self.passes}: applied={result.applied} skipped={result.skipped}"
        )
        return result

    def _apply_one(self, override: "Override") -> bool:
        try:
            node = self.document.query(override.selector)
        except SelectorError as e:
            logger.debug(f"[Reconciler] {e}")
            return False
        except Exception as e:
            logger.debug(f"[Reconciler] Query failed for {override.selector}: {e}")
            return False
        if node is None:
            return False

        try:
            if self.document.get_text(node) != override.text:
                self.document.set_text(node, override.text)
            self.document.force_color_inherit(node)
        except Exception as e:
            # Node went stale between query and write.
            logger.debug(f"[Reconciler] Write failed for {override.selector}: {e}")
            return False
        return True

    # ---- masking ----------------------------------------------------------

    async def ensure_mask(self) -> None:
        """Mask every override that does not currently resolve."""
        overrides = await self.store.load(self.page_key)
        unresolved = []
        for override in overrides:
            try:
                if self.document.query(override.selector) is None:
                    unresolved.append(override.selector)
            except SelectorError:
                unresolved.append(override.selector)
        self._write_mask(unresolved)

    def _write_mask(self, selectors: List[str]) -> None:
        style_id = self.config.mask_style_id
        if not selectors:
            if self.document.has_style(style_id):
                self.document.remove_style(style_id)
            return
        self.document.write_style(style_id, mask_css(selectors))

    # ---- lifecycle --------------------------------------------------------

    async def init(self) -> Optional[ReconcileResult]:
        """Mask, apply, always reveal, then observe if there is anything to keep applied."""
        result = None
        try:
            await self.ensure_mask()
            result = await self.apply_all()
        except Exception as e:
            logger.warning(f"[Reconciler] Initial pass failed for {self.page_key}: {e}")
        finally:
            try:
                self.document.reveal(self.config.reveal_class)
            except Exception as e:
                logger.warning(f"[Reconciler] Reveal failed: {e}")

        try:
            await self.start_observing()
        except Exception as e:
            logger.warning(f"[Reconciler] Could not start observing: {e}")

        if result is not None:
            logger.info(
                f"[Reconciler] Initialized {self.page_key or '<no key>'}: "
                f"applied={result.applied} skipped={result.skipped}"
            )
        return result

    async def start_observing(self) -> bool:
        if self.observing:
            return True
        overrides = await self.store.load(self.page_key)
        if not overrides:
            return False
        self._subscription = self.document.observe(self.schedule)
        logger.debug(f"[Reconciler] Observing mutations for {self.page_key}")
        return True

    def stop_observing(self) -> None:
        if self._subscription is not None:
            self._subscription.disconnect()
            self._subscription = None
        for task in (self._pending, self._running):
            if task is not None and not task.done():
                task.cancel()
        self._pending = None
        self._running = None

    def schedule(self) -> None:
        """Arm a delayed pass unless one is already pending."""
        if self.pending:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[Reconciler] Mutation outside an event loop; pass not scheduled")
            return
        self._pending = loop.create_task(self._delayed_pass())

    async def _delayed_pass(self) -> None:
        await asyncio.sleep(self.config.debounce_seconds)
        # Moved off _pending so mutations the pass causes can arm the next one.
        task = asyncio.current_task()
        self._running = task
        self._pending = None
        try:
            await self.apply_all()
        except Exception as e:
            logger.warning(f"[Reconciler] Scheduled pass failed: {e}")
        finally:
            if self._running is task:
                self._running = None
