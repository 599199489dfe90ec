"""HyperSignal process configuration: env vars with safe defaults.

Operator-tunable trading settings (poll intervals, thresholds, pairs) live in
settings.json and are handled by hypersignal.settings. This module only covers
what the process needs before it can read that file.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the package root, then the working directory
_ENV_PATH = Path(__file__).parent / ".env"
if _ENV_PATH.exists():
    load_dotenv(_ENV_PATH)
load_dotenv(override=False)


def _bool(val: str) -> bool:
    return val.strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class HyperSignalConfig:
    # ── Listeners ──
    host: str = os.getenv("HYPERSIGNAL_HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3001"))

    # ── Hyperliquid ──
    hl_testnet: bool = _bool(os.getenv("HYPERSIGNAL_HL_TESTNET", "false"))
    # seconds per info request
    hl_timeout: float = float(os.getenv("HYPERSIGNAL_HL_TIMEOUT", "10"))

    # ── Scheduler ──
    reload_seconds: float = float(os.getenv("HYPERSIGNAL_RELOAD_SECONDS", "300"))
    tick_seconds: float = float(os.getenv("HYPERSIGNAL_TICK_SECONDS", "1"))

    # ── Mode ──
    log_level: str = os.getenv("HYPERSIGNAL_LOG_LEVEL", "INFO")

    # ── Paths ──
    data_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("HYPERSIGNAL_DATA_DIR", str(Path.cwd() / "data"))
        )
    )

    def __post_init__(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def signals_file(self) -> Path:
        return self.data_dir / "signals.json"

    @property
    def wallets_file(self) -> Path:
        return self.data_dir / "wallets.json"
