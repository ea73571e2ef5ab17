"""
PagePatch configuration.

A single dataclass holds every tunable used by the synthesizer,
reconciler, controller and session loop. Defaults match the
behaviour of the browser extension PagePatch grew out of.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Tuple

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = os.path.join("~", ".pagepatch", "overrides.json")


@dataclass
class PagePatchConfig:
    """Configuration for PagePatch components."""
    # Reconciler
    debounce_ms: int = 150  # quiescence window for mutation-driven passes
    mask_style_id: str = "pagepatch-mask-style"
    reveal_class: str = "pagepatch-unhide"
    # Selector synthesis
    max_depth: int = 5
    max_selector_length: int = 512
    max_attribute_length: int = 100
    stable_prefixes: Tuple[str, ...] = ("data-", "aria-")
    path_separator: str = " > "
    # Edit controller / session
    editor_class: str = "pagepatch-overlay"
    poll_interval_ms: int = 100
    # Storage
    store_path: str = field(default=DEFAULT_STORE_PATH)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def resolved_store_path(self) -> str:
        return os.path.abspath(os.path.expanduser(self.store_path))

    @classmethod
    def from_env(cls) -> "PagePatchConfig":
        """
        Build a config from PAGEPATCH_* environment variables.

        Recognised:
            PAGEPATCH_STORE: path of the JSON override store
            PAGEPATCH_DEBOUNCE_MS: reconciliation quiescence delay
            PAGEPATCH_POLL_MS: browser event poll interval
        """
        config = cls()
        store = os.getenv("PAGEPATCH_STORE")
        if store:
            config.store_path = store
        config.debounce_ms = _int_from_env("PAGEPATCH_DEBOUNCE_MS", config.debounce_ms)
        config.poll_interval_ms = _int_from_env("PAGEPATCH_POLL_MS", config.poll_interval_ms)
        return config


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[Config] Ignoring {name}={raw!r}: not an integer")
        return default
    if value < 0:
        logger.warning(f"[Config] Ignoring {name}={raw!r}: must be non-negative")
        return default
    return value
