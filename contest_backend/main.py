"""
ASGI entry point: ``uvicorn contest_backend.main:app``.
"""

from __future__ import annotations

import logging
import os

from contest_backend.app import create_app

logging.basicConfig(level=logging.INFO)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 5000)))
