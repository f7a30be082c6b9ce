from __future__ import annotations

import logging
import socket

import uvicorn

from onboarding.config import Settings, load_dotenv

logger = logging.getLogger(__name__)


def _port_is_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def pick_port(settings: Settings) -> int:
    """First free port from ``settings.port``, or ``settings.port`` itself if none is."""
    candidates = range(settings.port, settings.port + max(1, settings.port_tries))
    port = next((p for p in candidates if _port_is_free(settings.host, p)), settings.port)
    if port != settings.port:
        logger.info("port %s is busy; using %s", settings.port, port)
    return port


def main() -> None:
    exported = load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if exported:
        logger.debug("loaded %s from .env", ", ".join(exported))

    port = pick_port(settings)
    logger.info("serving on http://%s:%s/", settings.host, port)

    uvicorn.run(
        "onboarding.main:app",
        host=settings.host,
        port=port,
        reload=settings.reload,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
