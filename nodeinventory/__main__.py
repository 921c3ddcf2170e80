"""Entry point for `python -m nodeinventory`.

Usage:
    python -m nodeinventory
    uv run python -m nodeinventory
"""

from __future__ import annotations

import asyncio

from nodeinventory.app import main

asyncio.run(main())
