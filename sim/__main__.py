"""Entry point: python -m sim."""

import asyncio
import sys

from .sim import Sim


def main() -> int:
    return asyncio.run(Sim.from_env().run())


if __name__ == "__main__":
    sys.exit(main())
