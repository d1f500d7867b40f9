"""Run the settlement service with uvicorn: ``python -m settlement_service``."""

from __future__ import annotations

import uvicorn

from settlement_service.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "settlement_service.app:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level,
    )


if __name__ == "__main__":
    main()
