"""Run one application instance with uvicorn.

Example:
    INSTANCE_ID=1 PORT=3000 REDIS_URL=redis://localhost:6379 python -m lbdemo
"""
from __future__ import annotations

from .app import main

if __name__ == "__main__":
    main()
