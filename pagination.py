"""
Query normalisation shared by every list endpoint

Raw query parameters come in as strings (or nothing at all). They are
clamped into a ``PageParams`` plan, never rejected, and the helpers below
build the Mongo conditions that list queries are assembled from.
"""
import math
import re
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional

from errors import ValidationError

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
# keeps (page - 1) * limit inside a signed 64-bit int for Mongo's skip
MAX_PAGE = (2 ** 63 - 1) // MAX_LIMIT

LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")


@dataclass(frozen=True)
class PageParams:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    search: str = ""

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def _to_int(raw: Any) -> int:
    if raw is None:
        return 0
    # leading digits only, so "12abc" reads as 12 and "2.7" as 2
    match = LEADING_INT.match(str(raw))
    return int(match.group(1)) if match else 0


def normalize(page: Any = None, limit: Any = None, search: Optional[str] = None) -> PageParams:
    # zero and garbage fall back to the defaults, everything else is clamped
    page_num = _to_int(page) or DEFAULT_PAGE
    limit_num = _to_int(limit) or DEFAULT_LIMIT
    return PageParams(
        page=min(MAX_PAGE, max(1, page_num)),
        limit=min(MAX_LIMIT, max(1, limit_num)),
        search=(search or "").strip(),
    )


def search_condition(term: str, fields: Iterable[str]) -> Dict[str, Any]:
    """Case-insensitive substring match OR-ed across ``fields``."""
    if not term:
        return {}
    pattern = {"$regex": re.escape(term), "$options": "i"}
    return {"$or": [{field: pattern} for field in fields]}


def parse_date_bound(raw: Optional[str], name: str, end_of_day: bool = False) -> Optional[datetime]:
    """Parse an ISO date/datetime into a naive UTC datetime.

    A bare date used as an upper bound covers the whole day.
    """
    if raw is None or not raw.strip():
        return None
    value = raw.strip()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {name}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    if end_of_day and len(value) == 10:
        parsed = datetime.combine(parsed.date(), time.max)
    return parsed


def date_range_condition(field: str, date_from: Optional[str], date_to: Optional[str]) -> Dict[str, Any]:
    start = parse_date_bound(date_from, "dateFrom")
    end = parse_date_bound(date_to, "dateTo", end_of_day=True)
    bounds: Dict[str, datetime] = {}
    if start:
        bounds["$gte"] = start
    if end:
        bounds["$lte"] = end
    return {field: bounds} if bounds else {}


def combine(*conditions: Dict[str, Any]) -> Dict[str, Any]:
    parts: List[Dict[str, Any]] = [c for c in conditions if c]
    if not parts:
        return {}
    if len(parts) == 1:
        return parts[0]
    return {"$and": parts}


def page_envelope(data: List[Any], total: int, params: PageParams) -> Dict[str, Any]:
    total_pages = math.ceil(total / params.limit)
    return {
        "data": data,
        "pagination": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": params.page < total_pages,
            "hasPrev": params.page > 1,
        },
    }
