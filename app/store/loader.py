from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator

from pydantic import ValidationError

from app.schemas import Profile

from .base import ProfileStore

logger = logging.getLogger(__name__)


def iter_profile_documents(path: str | Path) -> Iterator[dict[str, Any]]:
    """Yield documents from a JSON array file or a JSON-lines file."""
    source = Path(path)
    raw = source.read_text(encoding="utf-8").strip()
    if not raw:
        return
    if raw.startswith("["):
        parsed = json.loads(raw)
        for item in parsed:
            if isinstance(item, dict):
                yield item
        return
    for line_number, line in enumerate(raw.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        item = json.loads(line)
        if not isinstance(item, dict):
            raise ValueError(f"{source}:{line_number}: expected a JSON object per line")
        yield item


def load_profiles(path: str | Path, store: ProfileStore) -> tuple[int, int]:
    """Validate and upsert every profile in path; returns (loaded, skipped)."""
    loaded = 0
    skipped = 0
    for document in iter_profile_documents(path):
        try:
            profile = Profile.model_validate(document)
        except ValidationError as exc:
            skipped += 1
            logger.warning("profile_skipped errors=%s", exc.error_count())
            continue
        store.upsert(profile.model_dump(mode="json"))
        loaded += 1
    return loaded, skipped
