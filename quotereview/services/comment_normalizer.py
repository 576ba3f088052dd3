"""
Read-repair for review comments and annotation payloads.

Older rows store ``comments`` as a bare string (or null, or a list mixing
strings, blanks and structured entries). Every mutating access runs
``normalize_quotation`` first so only the canonical shape

    [{"text": str, "addedBy": int, "addedAt": iso-8601 str}, ...]

is ever written back. Normalisation keeps well-formed entries untouched and
in order, converts bare strings, drops everything else, and is idempotent.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class PlainString:
    """Legacy single-string comment."""
    text: str


@dataclass(frozen=True)
class Structured:
    """Comment list, possibly still containing legacy or malformed items."""
    items: List[Any] = field(default_factory=list)


LegacyComment = Union[PlainString, Structured]


ANNOTATION_NUMERIC_FIELDS = (
    "page", "x", "y", "startX", "startY", "endX", "endY",
    "strokeWidth", "fontSize", "textFontSize", "width", "height",
)


def parse_comments(raw: Any) -> LegacyComment:
    """Classify a stored ``comments`` value."""
    if raw is None:
        return Structured([])
    if isinstance(raw, str):
        return PlainString(raw)
    if isinstance(raw, (list, tuple)):
        return Structured(list(raw))
    if isinstance(raw, dict):
        return Structured([raw])
    return Structured([])


def _iso(value: Optional[datetime]) -> str:
    if value is None:
        value = datetime.now(timezone.utc)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def make_comment(text: str, added_by: int, added_at: Optional[datetime] = None) -> Dict[str, Any]:
    return {"text": text, "addedBy": added_by, "addedAt": _iso(added_at)}


def _is_well_formed(entry: Any) -> bool:
    return (
        isinstance(entry, dict)
        and isinstance(entry.get("text"), str)
        and bool(entry["text"].strip())
        and entry.get("addedBy") is not None
        and bool(entry.get("addedAt"))
    )


def normalize_comments(
    raw: Any,
    fallback_author: Optional[int],
    fallback_time: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Collapse any stored ``comments`` shape into the canonical list.

    Bare strings become comments attributed to ``fallback_author`` at
    ``fallback_time`` (now when unknown). Structured entries missing their
    author or timestamp are completed the same way.
    """
    parsed = parse_comments(raw)
    items = [parsed.text] if isinstance(parsed, PlainString) else parsed.items

    normalized = []
    for entry in items:
        if _is_well_formed(entry):
            normalized.append(entry)
            continue

        if isinstance(entry, str):
            text = entry.strip()
            if text and fallback_author is not None:
                normalized.append(make_comment(text, fallback_author, fallback_time))
            continue

        if isinstance(entry, dict) and isinstance(entry.get("text"), str) and entry["text"].strip():
            author = entry.get("addedBy") if entry.get("addedBy") is not None else fallback_author
            if author is None:
                continue
            repaired = dict(entry)
            repaired["text"] = entry["text"].strip()
            repaired["addedBy"] = author
            repaired["addedAt"] = entry.get("addedAt") or _iso(fallback_time)
            normalized.append(repaired)

    return normalized


def normalize_version_comments(version, actor_id: int) -> bool:
    """Repair one QuotationVersion in place. Returns True when it changed."""
    normalized = normalize_comments(
        version.comments,
        fallback_author=version.reviewed_by or actor_id,
        fallback_time=version.uploaded_at,
    )
    if normalized != version.comments:
        version.comments = normalized
        return True
    return False


def normalize_quotation(quotation, actor_id: int) -> int:
    """Repair every version of a quotation; returns how many were rewritten."""
    return sum(1 for v in quotation.versions if normalize_version_comments(v, actor_id))


# ============= ANNOTATIONS =============

def _to_number(value: Any) -> Optional[Union[int, float]]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(number) if number.is_integer() else number


def normalize_annotation(annotation: Dict[str, Any]) -> Dict[str, Any]:
    normalized = dict(annotation)
    for key in ANNOTATION_NUMERIC_FIELDS:
        if key == "page":
            continue
        if key in normalized:
            normalized[key] = _to_number(normalized[key])

    page = _to_number(normalized.get("page"))
    normalized["page"] = int(page) if page is not None and page >= 1 else 1
    return normalized


def normalize_annotations(payload: Any) -> List[Dict[str, Any]]:
    """Coerce an incoming annotation payload into a list of annotation records."""
    if not isinstance(payload, list):
        return []
    return [normalize_annotation(a) for a in payload if isinstance(a, dict)]
