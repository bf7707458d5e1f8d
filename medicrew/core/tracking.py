import logging
import time
from typing import Any, Callable, Dict, Optional

from .prompts import Coordinates

logger = logging.getLogger(__name__)


def tracking_enabled(
    active: bool,
    result: Optional[Dict[str, Any]],
    location: Optional[Coordinates],
    location_consent: str,
) -> bool:
    return bool(active and result and location and location_consent == "granted")


def is_due(last_refresh: Optional[float], interval_seconds: float, now: Optional[float] = None) -> bool:
    now = time.monotonic() if now is None else now
    return last_refresh is None or now - last_refresh >= interval_seconds


def apply_tracking_update(result: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Any response that carries a doctors list, even an empty one, replaces the current one."""
    if not isinstance((update or {}).get("nearby_doctors_list"), list):
        return result
    merged = dict(result)
    merged["nearby_doctors_list"] = update["nearby_doctors_list"]
    merged["real_time_tracking"] = update.get("real_time_tracking", result.get("real_time_tracking"))
    return merged


def refresh_doctors(
    result: Dict[str, Any],
    location: Coordinates,
    fallback_summary: str,
    fetch: Callable[[Coordinates, str], Dict[str, Any]],
) -> Dict[str, Any]:
    """One polling tick. A failed fetch keeps the previous list."""
    summary = result.get("parsed_summary") or fallback_summary
    try:
        update = fetch(location, summary)
    except Exception as e:
        logger.error("Tracking update failed: %s", e)
        return result
    return apply_tracking_update(result, update)
