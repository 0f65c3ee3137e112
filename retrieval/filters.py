from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


def build_where_filter(
    content_hash: Optional[str] = None,
    source_names: Optional[Iterable[str]] = None,
    **equals: Any,
) -> Dict:
    """
    Construct a Chroma 'where' filter dict using metadata fields we wrote during indexing:
      - metadata.content_hash
      - metadata.source_name (file path)
      - any other scalar field, compared with $eq
    Chroma accepts one condition per dict, several are wrapped in $and.
    """
    conditions = []
    if content_hash:
        conditions.append({"content_hash": {"$eq": content_hash}})
    if source_names:
        conditions.append({"source_name": {"$in": list(source_names)}})
    for key, value in equals.items():
        if value is not None:
            conditions.append({key: {"$eq": value}})

    if not conditions:
        return {}
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def normalize_where(where: Dict) -> Dict:
    """Accept the shorthand {'field': value, ...} as well as a ready Chroma filter."""
    if not where or any(k.startswith("$") for k in where):
        return where
    if len(where) == 1 and isinstance(next(iter(where.values())), dict):
        return where
    return build_where_filter(**where)
