from __future__ import annotations

import csv
import os
import re
from dataclasses import dataclass
from pathlib import Path

from safarigam.api.models import SEED_SPECIES_COUNT, Destination, Proverb


def _norm_key(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip().casefold()


def _split_list(cell: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in cell.split(";") if p.strip())


@dataclass(frozen=True, slots=True)
class Species:
    id: int
    name: str
    category: str
    habitat: str
    status: str
    parks: tuple[str, ...]
    fact: str
    swahili: str | None = None
    emoji: str = ""


@dataclass(frozen=True, slots=True)
class Park:
    id: int
    name: str
    country: str
    ecosystem: str
    description: str
    color: str


@dataclass(frozen=True, slots=True)
class SpeciesCatalog:
    """All species, ordered by id.

    The first `SEED_SPECIES_COUNT` entries are the hand-curated ones: unlocked on a
    fresh profile and used as quiz subjects.
    """

    species: tuple[Species, ...]
    _by_id: dict[int, Species]
    _name_to_id: dict[str, int]

    @staticmethod
    def from_rows(rows: list[Species]) -> "SpeciesCatalog":
        by_id: dict[int, Species] = {}
        name_to_id: dict[str, int] = {}
        for s in rows:
            if s.id in by_id:
                raise CatalogLoadError(f"Duplicate species id: {s.id}")
            by_id[s.id] = s
            name_to_id.setdefault(_norm_key(s.name), s.id)
        ordered = tuple(sorted(rows, key=lambda s: s.id))
        return SpeciesCatalog(species=ordered, _by_id=by_id, _name_to_id=name_to_id)

    def __len__(self) -> int:
        return len(self.species)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, int) and item in self._by_id

    def get(self, species_id: int) -> Species | None:
        return self._by_id.get(species_id)

    def resolve_id(self, name: str) -> int | None:
        return self._name_to_id.get(_norm_key(name))

    def ids(self) -> tuple[int, ...]:
        return tuple(s.id for s in self.species)

    def quiz_pool(self) -> tuple[Species, ...]:
        return tuple(s for s in self.species if s.id <= SEED_SPECIES_COUNT)

    def categories(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(s.category for s in self.species))

    def search(self, *, category: str | None = None, text: str | None = None) -> list[Species]:
        """Encyclopedia filter: category match (or "all") and case-insensitive name substring."""

        cat = _norm_key(category) if category else "all"
        needle = (text or "").casefold()
        return [
            s
            for s in self.species
            if (cat == "all" or _norm_key(s.category) == cat) and needle in s.name.casefold()
        ]


@dataclass(frozen=True, slots=True)
class Catalog:
    species: SpeciesCatalog
    parks: tuple[Park, ...]
    destinations: tuple[Destination, ...]
    proverbs: tuple[Proverb, ...]

    def get_park(self, park_id: int) -> Park | None:
        return next((p for p in self.parks if p.id == park_id), None)

    def get_destination(self, destination_id: int) -> Destination | None:
        return next((d for d in self.destinations if d.id == destination_id), None)


class CatalogLoadError(RuntimeError):
    pass


def _read_csv_dicts(path: Path, *, required: tuple[str, ...]) -> list[dict[str, str]]:
    try:
        with path.open(encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            fieldnames = reader.fieldnames
            rows = list(reader)
    except FileNotFoundError as e:
        raise CatalogLoadError(f"Catalog file not found: {path}") from e
    except (UnicodeDecodeError, csv.Error) as e:
        raise CatalogLoadError(f"Unreadable catalog CSV {path}: {e}") from e

    if fieldnames is None:
        raise CatalogLoadError(f"Empty catalog CSV: {path}")

    header = [h.strip().casefold() for h in fieldnames]
    missing = [c for c in required if c not in header]
    if missing:
        raise CatalogLoadError(f"Unexpected header in {path}: missing {missing}")

    out: list[dict[str, str]] = []
    for row in rows:
        cleaned = {str(k).strip().casefold(): (v or "").strip() for k, v in row.items() if k is not None}
        if any(cleaned.values()):
            out.append(cleaned)
    return out


def _int_cell(row: dict[str, str], key: str, path: Path) -> int:
    try:
        return int(row[key])
    except (KeyError, ValueError) as e:
        raise CatalogLoadError(f"Invalid {key!r} in {path}: {row.get(key)!r}") from e


def load_species_csv(path: Path) -> list[Species]:
    rows = _read_csv_dicts(path, required=("id", "name", "category"))
    out: list[Species] = []
    for row in rows:
        if not row.get("name"):
            continue
        category = row["category"] or "Unknown"
        out.append(
            Species(
                id=_int_cell(row, "id", path),
                name=row["name"],
                category=category,
                habitat=row.get("habitat") or "Various African habitats",
                status=row.get("status") or "Data Deficient",
                parks=_split_list(row.get("parks", "")) or ("Various parks",),
                fact=row.get("fact")
                or f"The {row['name']} is one of Africa's fascinating {category.lower()} species.",
                swahili=row.get("swahili") or None,
                emoji=row.get("emoji", ""),
            )
        )
    return out


def pad_species(rows: list[Species], *, target: int) -> list[Species]:
    """Fill the catalog up to `target` entries with undiscovered placeholders."""

    out = list(rows)
    next_id = max((s.id for s in out), default=0) + 1
    while len(out) < target:
        out.append(
            Species(
                id=next_id,
                name=f"African Species #{len(out) + 1}",
                category="Unknown",
                habitat="Unknown",
                status="Data Deficient",
                parks=("Unexplored regions",),
                fact="Many species in Africa are still waiting to be discovered!",
                emoji="❓",
            )
        )
        next_id += 1
    return out


def load_parks_csv(path: Path) -> tuple[Park, ...]:
    rows = _read_csv_dicts(path, required=("id", "name", "country"))
    return tuple(
        Park(
            id=_int_cell(row, "id", path),
            name=row["name"],
            country=row["country"],
            ecosystem=row.get("ecosystem", ""),
            description=row.get("description", ""),
            color=row.get("color", ""),
        )
        for row in rows
    )


def load_destinations_csv(path: Path) -> tuple[Destination, ...]:
    rows = _read_csv_dicts(path, required=("id", "name", "region", "points"))
    out: list[Destination] = []
    for row in rows:
        points = _int_cell(row, "points", path)
        if points < 0:
            raise CatalogLoadError(f"Negative points for destination {row['name']!r} in {path}")
        out.append(
            Destination(
                id=_int_cell(row, "id", path),
                name=row["name"],
                region=row["region"],
                description=row.get("description", ""),
                key_species=list(_split_list(row.get("key_species", ""))),
                color=row.get("color", ""),
                points=points,
            )
        )
    return tuple(out)


def load_proverbs_csv(path: Path) -> tuple[Proverb, ...]:
    rows = _read_csv_dicts(path, required=("text", "translation", "language"))
    return tuple(Proverb(text=r["text"], translation=r["translation"], language=r["language"]) for r in rows)


def _fallback_catalog(*, species_target: int) -> Catalog:
    """Small built-in dataset used when the CSVs are missing.

    Enough seed species for quizzes plus a few locked ones, one park, two destinations.
    """

    species = [
        Species(
            id=i,
            name=f"Species {i}",
            category="Mammal",
            habitat="Savanna",
            status="Least Concern",
            parks=("Serengeti",),
            fact=f"Fact about species {i}.",
        )
        for i in range(1, SEED_SPECIES_COUNT + 9)
    ]
    species[0] = Species(
        id=1,
        name="African Lion",
        category="Mammal",
        habitat="Savanna",
        status="Vulnerable",
        parks=("Serengeti",),
        fact="Lions are the only cats that live in groups called prides.",
        swahili="Simba",
        emoji="🦁",
    )

    return Catalog(
        species=SpeciesCatalog.from_rows(pad_species(species, target=species_target)),
        parks=(Park(id=1, name="Serengeti National Park", country="Tanzania", ecosystem="Savanna", description="", color=""),),
        destinations=(
            Destination(id=1, name="Amazon Rainforest", region="South America", points=150),
            Destination(id=2, name="Galápagos Islands", region="South America", points=200),
        ),
        proverbs=(Proverb(text="Akili ni mali", translation="Wisdom is wealth", language="Swahili"),),
    )


def load_catalog(*, root: Path, species_target: int = 0) -> Catalog:
    assets_dir = root / "assets"

    # Default behavior: fall back to a tiny built-in dataset when files are missing.
    # You can force strict behavior by setting SAFARIGAM_STRICT_CATALOG=1.
    strict = os.getenv("SAFARIGAM_STRICT_CATALOG", "").strip().lower() in {"1", "true", "yes"}

    try:
        species = load_species_csv(assets_dir / "species.csv")
        return Catalog(
            species=SpeciesCatalog.from_rows(pad_species(species, target=species_target)),
            parks=load_parks_csv(assets_dir / "parks.csv"),
            destinations=load_destinations_csv(assets_dir / "destinations.csv"),
            proverbs=load_proverbs_csv(assets_dir / "proverbs.csv"),
        )
    except CatalogLoadError:
        if strict:
            raise
        return _fallback_catalog(species_target=species_target)
