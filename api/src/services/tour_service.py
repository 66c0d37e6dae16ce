"""Tour persistence hooks."""

import re
from typing import Any, Dict

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", value.lower()).strip("-")


async def derive_tour_slug(data: Dict[str, Any]) -> Dict[str, Any]:
    """``before_save`` hook: keep ``slug`` in step with ``name``."""
    if data.get("name"):
        data = dict(data)
        data["slug"] = slugify(data["name"])
    return data
