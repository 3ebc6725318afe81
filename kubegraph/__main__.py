"""Entry point for `python -m kubegraph`.

Usage:
    python -m kubegraph
    uv run python -m kubegraph
"""

from __future__ import annotations

import asyncio

from kubegraph.app import main

asyncio.run(main())
