# Overview: Invalidation notifications for cached read views.

"""
Cached collections (sales lists, stock tables, dashboards) are keyed by tag.
After a write commits, the writer sends `cache_invalidated` with the set of
stale tags; subscribers refetch. Nothing is sent for rolled-back work.

    from stockflow.signals import cache_invalidated

    @cache_invalidated.connect
    def on_invalidate(sender, tags, store_id=None, **extra):
        ...
"""

from __future__ import annotations

from blinker import Namespace

_signals = Namespace()

cache_invalidated = _signals.signal("cache-invalidated")

TAG_SALES = "sales"
TAG_STOCK = "stock"


def notify_invalidated(sender, *tags: str, store_id: int | None = None, **extra) -> None:
    cache_invalidated.send(sender, tags=frozenset(tags), store_id=store_id, **extra)
