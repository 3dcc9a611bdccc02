from __future__ import annotations

import json
import logging
import re
import unicodedata
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)

ICON_WARNING = "icons/warning.png"

_SPLIT_RE = re.compile(r"[\s\-_.,:;/@()\[\]]+")


class Icon(BaseModel):
    path: str


class ResultItem(BaseModel):
    """
    One Alfred Script Filter entry.

    `variables` are handed to the next workflow step (e.g. `action`,
    `action2`, `notification`). `match` is the text the query is filtered
    against; it defaults to the title and is not sent to Alfred.
    """

    title: str
    subtitle: str = ""
    uid: Optional[str] = None
    arg: Optional[str] = None
    valid: bool = False
    autocomplete: Optional[str] = None
    icon: Optional[Icon] = None
    variables: Dict[str, str] = Field(default_factory=dict)
    match: Optional[str] = Field(default=None, exclude=True)

    def var(self, name: str, value: str) -> "ResultItem":
        self.variables[name] = value
        return self

    def with_icon(self, path: Optional[str]) -> "ResultItem":
        self.icon = Icon(path=path) if path else None
        return self

    @property
    def sort_key(self) -> str:
        return self.match if self.match is not None else self.title


def _fold(s: str) -> str:
    return unicodedata.normalize("NFKD", s).encode("ascii", "ignore").decode("ascii")


def score(value: str, word: str) -> float:
    """
    Score how well a single query word matches `value`; 0 means no match.

    Rules, best first: prefix, word initials, whole word, substring,
    all characters in order.
    """
    word = word.lower()
    if word.isascii():
        value = _fold(value)
    low = value.lower()
    if not set(word) <= set(low):
        return 0.0

    if low.startswith(word):
        return 100.0 - (len(value) / len(word))

    atoms = [a for a in _SPLIT_RE.split(low) if a]
    initials = "".join(a[0] for a in atoms)
    if word in atoms:
        return 100.0 - (len(value) / len(word))
    if initials.startswith(word):
        return 100.0 - (len(initials) / len(word))
    if word in initials:
        return 95.0 - (len(initials) / len(word))
    if word in low:
        return 90.0 - (len(value) / len(word))

    pattern = "".join(f".*?{re.escape(c)}" for c in word)
    m = re.search(pattern, low)
    if m:
        return 100.0 / ((1 + m.start()) * (m.end() - m.start() + 1))
    return 0.0


def filter_items(items: List[ResultItem], query: str) -> List[ResultItem]:
    """Keep items matching every word of `query`, best score first."""
    words = [w for w in (query or "").split() if w]
    if not words:
        return list(items)

    scored: List[Tuple[Tuple[float, str], ResultItem]] = []
    for item in items:
        value = item.sort_key.strip()
        if not value:
            continue
        total = 0.0
        for w in words:
            s = score(value, w)
            if not s:
                break
            total += s
        else:
            scored.append(((-total, value.lower()), item))
            logger.debug("[search] %0.2f %r", total, value)

    scored.sort(key=lambda t: t[0])
    return [item for _, item in scored]


class Feedback:
    """
    Ordered list of result items for one invocation.

    - `filter()` narrows the list to the query (fuzzy, best first).
    - `warn_empty()` adds a single invalid item when nothing is listed.
    - `to_json()` emits Alfred's `{"items": [...]}`; UIDs are dropped when
      `suppress_uids` so Alfred does not reorder by learned usage.
    """

    def __init__(self, *, max_results: int = 0, suppress_uids: bool = False) -> None:
        self.items: List[ResultItem] = []
        self.max_results = max_results
        self.suppress_uids = suppress_uids

    def __len__(self) -> int:
        return len(self.items)

    def add(self, item: ResultItem) -> ResultItem:
        self.items.append(item)
        return item

    def new_item(self, title: str, subtitle: str = "", **kwargs) -> ResultItem:
        return self.add(ResultItem(title=title, subtitle=subtitle, **kwargs))

    def warning(self, title: str, subtitle: str = "") -> ResultItem:
        return self.new_item(title, subtitle, valid=False).with_icon(ICON_WARNING)

    def filter(self, query: str) -> List[ResultItem]:
        if query and query.strip():
            logger.debug('searching for "%s" ...', query)
            self.items = filter_items(self.items, query)
        return self.items

    def warn_empty(self, title: str, subtitle: str = "") -> None:
        if not self.items:
            self.warning(title, subtitle)

    def payload(self) -> Dict[str, List[Dict]]:
        items = self.items
        if self.max_results and len(items) > self.max_results:
            items = items[: self.max_results]
        out = []
        for item in items:
            d = item.model_dump(exclude_none=True)
            if not d.get("variables"):
                d.pop("variables", None)
            if self.suppress_uids:
                d.pop("uid", None)
            out.append(d)
        return {"items": out}

    def to_json(self) -> str:
        return json.dumps(self.payload(), ensure_ascii=False)
