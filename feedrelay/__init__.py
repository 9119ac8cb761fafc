"""
feedrelay – relays syndication feeds to Mastodon-compatible status posts.

Each configured feed is polled on its own interval; new entries are turned into
plain-text posts (sanitised body, hashtags from categories, link) and published
at most once, guarded by a per-feed watermark and an optional Redis cache.
"""

__version__ = "0.3.0"
