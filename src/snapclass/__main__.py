"""Run the SnapClass API server: ``python -m snapclass``."""

from __future__ import annotations

import uvicorn

from snapclass.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("snapclass.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
