"""Generate small catalog fixtures under `tests/assets/`.

Contract
- Inputs: real CSVs under `<repo>/assets/`.
- Outputs: trimmed CSVs under `<repo>/tests/assets/`.
- Preserves:
  - headers
  - every seed species (ids 1..32) verbatim; quiz and companion tests use their names
  - every destination (travel tests depend on ids and points)
  - every proverb
- Trims / obfuscates:
  - only `EXTRA_LOCKED_SPECIES` non-seed species are kept, renamed `Species-NNNN`
    with the fact left blank so the loader synthesizes one
  - parks are cut down to the first `PARK_COUNT` rows

Usage:
    uv run python scripts/generate_test_assets.py

This script is deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd


SEED_SPECIES_COUNT = 32
EXTRA_LOCKED_SPECIES = 8
PARK_COUNT = 3


@dataclass(frozen=True)
class CsvSpec:
    src: str
    columns: tuple[str, ...]


SPECS: tuple[CsvSpec, ...] = (
    CsvSpec("species.csv", ("id", "name", "category", "habitat", "status", "parks", "fact", "swahili", "emoji")),
    CsvSpec("parks.csv", ("id", "name", "country", "ecosystem", "description", "color")),
    CsvSpec("destinations.csv", ("id", "name", "region", "description", "key_species", "color", "points")),
    CsvSpec("proverbs.csv", ("text", "translation", "language")),
)


def _stable_token(prefix: str, i: int) -> str:
    return f"{prefix}-{i:04d}"


def _trim_species(df: pd.DataFrame) -> pd.DataFrame:
    out = df.sort_values("id").head(SEED_SPECIES_COUNT + EXTRA_LOCKED_SPECIES).copy()

    locked = out["id"] > SEED_SPECIES_COUNT
    out.loc[locked, "name"] = [_stable_token("Species", int(i)) for i in out.loc[locked, "id"]]
    out.loc[locked, "fact"] = None
    out.loc[locked, "swahili"] = None
    return out


def main() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "assets"
    dst_dir = repo_root / "tests" / "assets"
    dst_dir.mkdir(parents=True, exist_ok=True)

    for spec in SPECS:
        src = src_dir / spec.src
        if not src.exists():
            raise FileNotFoundError(f"Missing source asset: {src}")

        df = pd.read_csv(src)
        if tuple(df.columns) != spec.columns:
            raise ValueError(f"Unexpected columns in {spec.src}: {list(df.columns)}")

        if spec.src == "species.csv":
            out = _trim_species(df)
        elif spec.src == "parks.csv":
            out = df.head(PARK_COUNT)
        else:
            out = df

        out.to_csv(dst_dir / spec.src, index=False)


if __name__ == "__main__":
    main()
