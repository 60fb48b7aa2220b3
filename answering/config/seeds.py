"""Knowledge store seeds loaded at startup."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import TypeAdapter

from answering.models import FileDocument, StoreSeed

logger = structlog.get_logger(__name__)

RESOURCES_DIR = Path(__file__).resolve().parents[2] / "resources"

DEFAULT_STORE_SEEDS: List[StoreSeed] = [
    StoreSeed(
        display_name="Onboarding Knowledge Base",
        files=[
            FileDocument(
                path=str(RESOURCES_DIR / "onboarding-tips.txt"),
                display_name="onboarding-tips.txt",
                mime_type="text/plain",
            )
        ],
        sample_questions=[
            "What should I do in my first week?",
            "Who do I ask about access to internal tools?",
        ],
    )
]

_seed_list = TypeAdapter(List[StoreSeed])


def load_store_seeds(path: Optional[str] = None) -> List[StoreSeed]:
    """Seeds from a JSON file (a list of StoreSeed objects), or the defaults.

    Relative file paths inside the JSON are resolved against the JSON file.
    """
    if not path:
        return list(DEFAULT_STORE_SEEDS)

    seeds_path = Path(path)
    seeds = _seed_list.validate_python(json.loads(seeds_path.read_text(encoding="utf-8")))
    resolved = []
    for seed in seeds:
        files = [
            document.model_copy(update={"path": str((seeds_path.parent / document.path).resolve())})
            if not Path(document.path).is_absolute()
            else document
            for document in seed.files
        ]
        resolved.append(seed.model_copy(update={"files": files}))
    logger.info("Store seeds loaded", path=str(seeds_path), stores=[seed.display_name for seed in resolved])
    return resolved
