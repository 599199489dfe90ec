"""Entry point: python -m hypersignal"""
from __future__ import annotations

import asyncio
import logging
import sys

from hypersignal.server import HyperSignalService


def main() -> None:
    try:
        service = HyperSignalService()
        asyncio.run(service.run())
    except KeyboardInterrupt:
        print("\nHyperSignal shutting down.")
        sys.exit(0)
    except Exception as e:
        # Service logging may not be installed yet
        logging.basicConfig(level=logging.INFO)
        logging.getLogger("hypersignal").critical("Startup failed: %s", e)
        print(f"HyperSignal failed to start: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
