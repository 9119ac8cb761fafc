"""
YAML configuration source and state sink.

The same file is read at startup and, when ``save`` is enabled, rewritten
after every tick with the advanced watermarks::

    instance:
      url: https://mastodon.example
      lang: en
      limit: 500
      timezone: Europe/Warsaw
      save: true
      last_monit: 1700000000
      feed:
        - name: Example
          url: https://example.com/rss
          token: xxx
          visibility: unlisted
          interval: 15
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import ValidationError

from .errors import ConfigError, PersistenceError
from .interfaces import StateStore
from .models import MonitorState


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "./feed.yml"

# Seed for a missing or stale global watermark
MONIT_MAX_AGE = 60 * 60
MONIT_SEED_OFFSET = 55 * 60

_FEED_OMIT_EMPTY = ("prefix", "hashlink", "replace_from", "replace_to", "last_run")


def normalise(state: MonitorState, now: Optional[float] = None) -> MonitorState:
    """Fill in the startup defaults that depend on the clock or on other feeds."""
    now = int(now if now is not None else time.time())

    monit = state.last_monit.load()
    if monit == 0 or now - monit > MONIT_MAX_AGE:
        seeded = now - now % 60 - MONIT_SEED_OFFSET
        logger.info(f"Seeding last_monit with {seeded} (was {monit})")
        state.last_monit.store(seeded)

    for feed in state.feeds:
        if feed.last_run == 0:
            feed.last_run = state.last_monit.load()
        if not feed.enabled:
            logger.info(f"Feed '{feed.name}' has no url or token, it stays disabled")

    try:
        ZoneInfo(state.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Unknown timezone {state.timezone!r}, using UTC: {e}")
        state.timezone = "UTC"

    return state


def dump_state(state: MonitorState) -> Dict[str, Any]:
    """Serialisable view of the persistent part of ``state``."""
    state.monit = state.last_monit.load()
    instance = state.model_dump(by_alias=True, mode="json")
    for feed in instance.get("feed", []):
        for key in _FEED_OMIT_EMPTY:
            if not feed.get(key):
                feed.pop(key, None)
    return {"instance": instance}


class YamlStateStore(StateStore):
    """Reads and writes the monitor state as a YAML file."""

    def __init__(self, path: str = DEFAULT_CONFIG_FILE):
        self.path = Path(path)

    def load(self) -> MonitorState:
        try:
            with self.path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {self.path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("instance"), dict):
            raise ConfigError(f"No 'instance' section found in {self.path}")

        try:
            state = MonitorState.model_validate(data["instance"])
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {self.path}: {e}") from e

        logger.info(f"Loaded {len(state.feeds)} feed(s) from {self.path}")
        return normalise(state)

    def save(self, state: MonitorState) -> None:
        data = dump_state(state)
        directory = self.path.parent if str(self.path.parent) else Path(".")
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory, prefix=f".{self.path.name}.", delete=False
            ) as tmp:
                tmp_name = tmp.name
                yaml.safe_dump(data, tmp, sort_keys=False, allow_unicode=True)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except (OSError, yaml.YAMLError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e
        logger.debug(f"Saved state to {self.path}")
