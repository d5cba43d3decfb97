"""Time zone resolution for calendar day boundaries."""

import datetime as dt
import logging
import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import config

logger = logging.getLogger(__name__)

_LOCALTIME = Path("/etc/localtime")


def _system_zone_name() -> Optional[str]:
    """Best effort IANA name of the machine's zone (TZ variable or /etc/localtime link)."""
    tz_env = os.getenv("TZ", "").strip().lstrip(":")
    if tz_env:
        return tz_env
    try:
        target = str(_LOCALTIME.resolve())
    except OSError:
        return None
    marker = "zoneinfo/"
    if marker in target:
        return target.split(marker, 1)[1]
    return None


def resolve_tz(name: Optional[str] = None) -> dt.tzinfo:
    """Resolve a zone name into a tzinfo.

    None/"" falls back to ``config.TIMEZONE`` and then to the machine's zone.
    "UTC" resolves to ``datetime.timezone.utc``; anything else must be an IANA
    name. Raises ValueError for unknown identifiers.
    """
    tz_name = (name if name is not None else config.TIMEZONE).strip()
    if tz_name.upper() in {"UTC", "Z", "GMT"}:
        return dt.timezone.utc

    if not tz_name or tz_name.lower() in {"local", "system"}:
        system_name = _system_zone_name()
        if system_name:
            try:
                return ZoneInfo(system_name)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning(f"System zone {system_name!r} not found in tz database")
        # Fixed offset only; day boundaries will drift across DST changes
        logger.warning("Could not determine IANA zone, using current fixed UTC offset. Set TIMELOG_TZ.")
        return dt.datetime.now().astimezone().tzinfo or dt.timezone.utc

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as ex:
        raise ValueError(f"Invalid timezone identifier: {tz_name!r}") from ex
