"""
Infrastructure adapters: HTTP client, cache client and tick scheduler.
"""
