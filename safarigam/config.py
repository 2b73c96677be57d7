from __future__ import annotations

import os
from dataclasses import dataclass, fields

from dotenv import load_dotenv


@dataclass(frozen=True, slots=True)
class EngineSettings:
    # Part of every persisted key; bump when the profile document changes incompatibly.
    state_version: str = "v2"

    guest_quota_ms: int = 10 * 60 * 60 * 1000
    playtime_tick_ms: int = 60_000
    save_debounce_ms: int = 1_000
    toast_duration_ms: int = 4_000

    # Safari progress ramp: +step percent every interval until 100.
    progress_step: int = 5
    progress_interval_ms: int = 400

    quiz_reward: int = 25
    bonus_unlock_probability: float = 0.5

    species_target: int = 1000
    page_size: int = 48


def _env_overrides() -> dict[str, object]:
    out: dict[str, object] = {}
    for f in fields(EngineSettings):
        raw = os.environ.get(f"SAFARIGAM_{f.name.upper()}")
        if raw is None or not raw.strip():
            continue
        default = f.default
        if isinstance(default, bool):
            out[f.name] = raw.strip().lower() in {"1", "true", "yes"}
        elif isinstance(default, int):
            out[f.name] = int(raw)
        elif isinstance(default, float):
            out[f.name] = float(raw)
        else:
            out[f.name] = raw.strip()
    return out


def settings_from_env(*, load_env_file: bool = True) -> EngineSettings:
    """Build settings from `SAFARIGAM_*` environment variables.

    A local `.env` is loaded first (without overriding real env vars), e.g.
    `SAFARIGAM_GUEST_QUOTA_MS=120000` for a short guest quota during manual testing.
    """

    if load_env_file:
        load_dotenv(override=False)
    return EngineSettings(**_env_overrides())  # type: ignore[arg-type]
