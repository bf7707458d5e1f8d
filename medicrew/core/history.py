import json
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .account import can_store_history
from .models import HistoryItem, UserProfile

logger = logging.getLogger(__name__)

SUMMARY_LENGTH = {"patient": 60, "doctor": 80}


def _new_id(taken=()) -> str:
    base = f"hist-{int(time.time() * 1000)}"
    new_id, n = base, 1
    while new_id in taken:
        new_id = f"{base}-{n}"
        n += 1
    return new_id


def query_summary(text: str, mode: str) -> str:
    limit = SUMMARY_LENGTH.get(mode, 60)
    return text[:limit] + ("..." if len(text) > limit else "")


def make_history_item(mode: str, input_text: str, response: Dict[str, Any]) -> HistoryItem:
    return HistoryItem(
        id=response.get("history_id") or _new_id(),
        timestamp=datetime.now(timezone.utc).isoformat(),
        query_summary=query_summary(input_text, mode),
        type=mode,
        data=response,
    )


def should_save(response: Dict[str, Any], user: Optional[UserProfile]) -> bool:
    return bool(response.get("can_save_history")) and can_store_history(user)


def export_filename(item: HistoryItem) -> str:
    try:
        day = datetime.fromisoformat(item.timestamp).date().isoformat()
    except ValueError:
        day = datetime.now(timezone.utc).date().isoformat()
    return f"medicrew-{item.type}-{day}.json"


def export_bytes(item: HistoryItem) -> bytes:
    return json.dumps(item.data, indent=2, ensure_ascii=False).encode("utf-8")


class HistoryStore:
    """Per-user, per-mode case history kept as JSON files. Newest first, never evicted."""

    def __init__(self, data_dir: Path, mode: str):
        self.data_dir = Path(data_dir)
        self.mode = mode

    def _path(self, user: UserProfile) -> Path:
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in user.id)
        return self.data_dir / f"medicrew_{self.mode}_history_{safe_id}.json"

    def load(self, user: Optional[UserProfile]) -> List[HistoryItem]:
        if user is None or user.is_guest:
            return []
        path = self._path(user)
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to parse history %s: %s", path, e)
            return []
        if not isinstance(raw, list):
            logger.error("History file %s is not a list", path)
            return []
        return [HistoryItem.from_dict(d) for d in raw if isinstance(d, dict)]

    def save(self, user: Optional[UserProfile], items: List[HistoryItem]) -> None:
        if user is None or user.is_guest:
            return
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._path(user).write_text(
            json.dumps([i.to_dict() for i in items], ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def add(self, user: Optional[UserProfile], item: HistoryItem) -> List[HistoryItem]:
        if user is None or user.is_guest:
            return []
        existing = self.load(user)
        taken = {i.id for i in existing}
        # model ids may be placeholders; stored ids must stay unique
        if item.id in taken:
            item = replace(item, id=_new_id(taken))
        items = [item] + existing
        self.save(user, items)
        return items

    def delete(self, user: Optional[UserProfile], item_id: str) -> List[HistoryItem]:
        items = self.load(user)
        for index, i in enumerate(items):
            if i.id == item_id:
                del items[index]
                break
        self.save(user, items)
        return items
