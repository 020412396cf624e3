"""Run the add-on with ``python -m mylists`` or the ``mylists`` script."""

from __future__ import annotations

import uvicorn

from app.config import get_settings


def main() -> None:
    config = get_settings()
    uvicorn.run(
        "app.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=config.environment == "development",
        log_level="info",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
