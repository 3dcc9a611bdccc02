from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from common.cache import (
    AUTO_FETCH_CACHE,
    ICON_CACHE,
    ITEMS_CACHE,
    LAST_USAGE_CACHE,
    SYNC_CACHE,
    MarkerCache,
)
from common.feedback import Feedback
from common.jobs import JobHandle
from state.models import Config


logger = logging.getLogger(__name__)

SYNC_JOB = "sync"
ICONS_JOB = "icons"

ICON_RELOAD = "icons/reload.png"


class Decision(Enum):
    TRIGGER_SYNC = "trigger-sync"
    REFRESHING = "refreshing"
    TRIGGER_ICONS = "trigger-icons"
    PROCEED = "proceed"


@dataclass(frozen=True)
class PolicyOutcome:
    decision: Decision
    auto_fetch: bool = False

    @property
    def proceed(self) -> bool:
        return self.decision is Decision.PROCEED


def needs_sync(cache: MarkerCache) -> bool:
    """Neither item data nor a completed sync is cached."""
    return not cache.exists(SYNC_CACHE) and not cache.exists(ITEMS_CACHE)


def evaluate(config: Config, cache: MarkerCache, data: MarkerCache, jobs: JobHandle) -> PolicyOutcome:
    """
    Decide what a search pass may do before any vault item is rendered.

    Checked in order; the first two short-circuit:
    1. neither item data nor a sync marker -> trigger a sync, or show a
       placeholder if a sync job is already running
    2. icon cache enabled and its marker absent/expired -> trigger icon refresh
    3. otherwise proceed, recording the last-usage timestamp; an absent or
       expired auto-fetch marker turns on per-item icon fetching for this
       pass and is rewritten
    """
    if needs_sync(cache):
        if jobs.is_running(SYNC_JOB):
            logger.info("Sync job already running.")
            return PolicyOutcome(Decision.REFRESHING)
        return PolicyOutcome(Decision.TRIGGER_SYNC)

    if config.icon_cache_enabled and data.expired(ICON_CACHE, config.icon_max_cache_age):
        return PolicyOutcome(Decision.TRIGGER_ICONS)

    try:
        cache.touch(LAST_USAGE_CACHE)
    except OSError as exc:
        logger.warning("Couldn't store last usage: %s", exc)

    auto_fetch = False
    if cache.expired(AUTO_FETCH_CACHE, config.auto_fetch_icon_max_cache_age):
        auto_fetch = True
        try:
            cache.store(AUTO_FETCH_CACHE, b"auto-fetch-cache")
        except OSError as exc:
            logger.warning("Couldn't store auto-fetch marker: %s", exc)

    return PolicyOutcome(Decision.PROCEED, auto_fetch=auto_fetch)


def add_outcome_items(fb: Feedback, outcome: PolicyOutcome) -> None:
    """Render the single remediation entry for a short-circuiting outcome."""
    if outcome.decision is Decision.TRIGGER_SYNC:
        (
            fb.new_item(
                "Cache expired/not existing. Need to run a sync.",
                "Sync Bitwarden secrets with server.",
                uid="sync",
                valid=True,
                arg="-background",
            )
            .with_icon(ICON_RELOAD)
            .var("action", "-sync")
            .var("action2", "-force")
            .var("notification", "Syncing Bitwarden secrets")
        )
    elif outcome.decision is Decision.REFRESHING:
        fb.new_item("Refreshing Bitwarden cache…").with_icon(ICON_RELOAD)
    elif outcome.decision is Decision.TRIGGER_ICONS:
        (
            fb.new_item(
                "Cache expired/not existing. Need to download/update Favicon for URLs",
                "Downloads favicons for URLs",
                uid="icons",
                valid=True,
                arg="-background",
            )
            .with_icon(ICON_RELOAD)
            .var("action", "-icons")
            .var("notification", "Downloading Favicons for URLs")
        )
