from __future__ import annotations

import os
from pathlib import Path

from safarigam.catalog.registry import Catalog
from safarigam.catalog.singleton import init_catalog
from safarigam.config import EngineSettings


def catalog_root() -> Path:
    """Directory holding `assets/`: `SAFARIGAM_CATALOG_ROOT`, else the project root."""

    override = os.getenv("SAFARIGAM_CATALOG_ROOT", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    # safarigam/catalog/startup.py -> project root
    return Path(__file__).resolve().parents[2]


def init_catalog_for_app(settings: EngineSettings) -> Catalog:
    return init_catalog(project_root=catalog_root(), species_target=settings.species_target)
