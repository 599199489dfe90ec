"""JSON-file persistence for signals and the wallet roster.

Each store owns one file. Missing or corrupt files are re-initialized to an
empty list instead of failing the caller; writes go to a temp file and are
swapped in with a rename so readers on the HTTP thread never see a partial
document.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from hypersignal.models import Signal

log = logging.getLogger(__name__)


class JsonFile:
    """A JSON document on disk with a default value and atomic writes."""

    def __init__(self, path: Path, default: Callable[[], Any]):
        self.path = Path(path)
        self._default = default
        self.lock = threading.RLock()

    def read(self) -> Any:
        with self.lock:
            if not self.path.exists():
                value = self._default()
                self.write(value)
                return value
            try:
                return json.loads(self.path.read_text())
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                log.warning("[STORE] %s unreadable (%s) — re-initializing",
                            self.path.name, str(e)[:100])
                value = self._default()
                self.write(value)
                return value

    def write(self, value: Any) -> None:
        with self.lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp, "w") as f:
                json.dump(value, f, indent=2, default=str)
            tmp.replace(self.path)


class SignalStore:
    """Signals, newest first."""

    def __init__(self, path: Path):
        self._file = JsonFile(path, list)

    def list(self) -> list[dict]:
        data = self._file.read()
        if not isinstance(data, list):
            log.warning("[STORE] signals file is not a list — ignoring contents")
            return []
        return [s for s in data if isinstance(s, dict)]

    def open_signals(self) -> list[Signal]:
        return [Signal.from_dict(d) for d in self.list() if d.get("status") == "Open"]

    def append(self, signal: Signal) -> None:
        with self._file.lock:
            signals = self.list()
            signals.insert(0, signal.to_dict())
            self._file.write(signals)

    def update(self, signal: Signal) -> bool:
        """Replace the stored record with the same id. Closed records are frozen."""
        with self._file.lock:
            signals = self.list()
            for i, existing in enumerate(signals):
                if existing.get("id") != signal.id:
                    continue
                if existing.get("status") in ("TP", "SL"):
                    log.debug("[STORE] Refusing to modify closed signal %s", signal.id)
                    return False
                signals[i] = signal.to_dict()
                self._file.write(signals)
                return True
        return False

    def update_many(self, updated: list[Signal]) -> int:
        """Batch form of update(): one read and one write per reprice cycle."""
        by_id = {s.id: s for s in updated}
        count = 0
        with self._file.lock:
            signals = self.list()
            for i, existing in enumerate(signals):
                sig = by_id.get(existing.get("id"))
                if sig is None or existing.get("status") in ("TP", "SL"):
                    continue
                signals[i] = sig.to_dict()
                count += 1
            if count:
                self._file.write(signals)
        return count


class WalletStore:
    """Tracked wallet roster: [{address, isActive, label}]."""

    def __init__(self, path: Path):
        self._file = JsonFile(path, list)

    def list(self) -> list[dict]:
        data = self._file.read()
        if not isinstance(data, list):
            return []
        return [w for w in data if isinstance(w, dict) and w.get("address")]

    def active(self) -> list[dict]:
        return [w for w in self.list() if w.get("isActive")]

    def upsert(self, address: str, is_active: bool = True, label: Optional[str] = None) -> dict:
        address = address.strip()
        if not address:
            raise ValueError("address is required")
        with self._file.lock:
            wallets = self.list()
            for w in wallets:
                if w["address"].lower() == address.lower():
                    w["isActive"] = bool(is_active)
                    if label is not None:
                        w["label"] = label
                    entry = w
                    break
            else:
                entry = {"address": address, "isActive": bool(is_active)}
                if label is not None:
                    entry["label"] = label
                wallets.append(entry)
            self._file.write(wallets)
        return entry
