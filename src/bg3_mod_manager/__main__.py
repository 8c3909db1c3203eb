"""Entry point for the standalone backend process."""

import sys

import uvicorn

from bg3_mod_manager.config import settings


def main() -> None:
    frozen = getattr(sys, "frozen", False)
    uvicorn.run(
        "bg3_mod_manager.main:app",
        host=settings.host,
        port=settings.port,
        log_level="info",
        reload=not frozen,
    )


if __name__ == "__main__":
    main()
