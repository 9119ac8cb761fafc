"""
Per-feed scheduling on top of the fixed monitor tick.

Every tick bumps a feed's ``progress``; once it reaches the feed's
``interval`` the feed is due and the counter restarts. With a one-minute
tick, ``interval`` is therefore in minutes.
"""

from .models import Feed


def tick(feed: Feed) -> bool:
    """Advance ``feed`` by one tick and report whether it is due."""
    if not feed.enabled:
        return False
    feed.progress += 1
    if feed.progress >= feed.interval:
        feed.progress = 0
        return True
    return False


def force_due(feed: Feed) -> bool:
    """Make an enabled feed due on its next :func:`tick`."""
    if not feed.enabled:
        return False
    feed.progress = max(feed.progress, feed.interval - 1)
    return True
