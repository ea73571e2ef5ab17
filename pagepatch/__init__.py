"""
PagePatch - Durable Text Overrides for Web Pages

Click any element, replace its text, and have the replacement
re-applied on every load and mutation without touching the page source.
"""

__version__ = "0.1.0"

from pagepatch.core.config import PagePatchConfig
from pagepatch.layers.storage.store import Override, OverrideStore, get_page_key

__all__ = [
    "Override",
    "OverrideStore",
    "PagePatchConfig",
    "get_page_key",
    "__version__",
]
