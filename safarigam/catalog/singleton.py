from __future__ import annotations

import logging
from pathlib import Path

from safarigam.api.models import SEED_SPECIES_COUNT
from safarigam.catalog.registry import Catalog, load_catalog


logger = logging.getLogger(__name__)

_CATALOG: Catalog | None = None


def init_catalog(*, project_root: Path, species_target: int = 0) -> Catalog:
    """Load the catalog once, padded with placeholder species up to `species_target`.

    Later calls return the cached instance. A seed set short of `SEED_SPECIES_COUNT`
    or an empty destination list still loads, but is logged: quizzes and travel
    degrade rather than fail.
    """

    global _CATALOG
    if _CATALOG is not None:
        if len(_CATALOG.species) < species_target:
            logger.warning(
                "Catalog already loaded with %d species; ignoring target %d",
                len(_CATALOG.species),
                species_target,
            )
        return _CATALOG

    catalog = load_catalog(root=project_root, species_target=species_target)

    seeds = len(catalog.species.quiz_pool())
    if seeds < SEED_SPECIES_COUNT:
        logger.warning("Catalog has %d of %d seed species", seeds, SEED_SPECIES_COUNT)
    if not catalog.destinations:
        logger.warning("Catalog has no destinations; every travel intent will be rejected")

    _CATALOG = catalog
    logger.info("Catalog loaded: %s", catalog_summary(catalog))
    return catalog


def catalog_summary(catalog: Catalog | None = None) -> dict[str, int]:
    cat = catalog or get_catalog()
    seeds = len(cat.species.quiz_pool())
    return {
        "species": len(cat.species),
        "seed_species": seeds,
        "locked_species": len(cat.species) - seeds,
        "parks": len(cat.parks),
        "destinations": len(cat.destinations),
        "proverbs": len(cat.proverbs),
    }


def reset_catalog_for_tests() -> None:
    global _CATALOG
    _CATALOG = None


def get_catalog() -> Catalog:
    if _CATALOG is None:
        raise RuntimeError("Catalog not initialized. Call init_catalog() at startup.")
    return _CATALOG
