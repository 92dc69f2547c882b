"""Run the Harbor API server."""

from __future__ import annotations

import uvicorn

from harbor.api.main import create_app
from harbor.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
