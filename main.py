#!/usr/bin/env python3
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT: Path = Path(__file__).resolve().parent

# Settings read the environment at import time, so .env goes first.
load_dotenv(REPO_ROOT / ".env")

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "rent_reclaim.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )
