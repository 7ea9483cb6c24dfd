"""EasyPages - web server entry point."""

import logging
import sys

import uvicorn

from easypages import config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

_LOG = logging.getLogger("easypages")


def main() -> None:
    """Run the app under uvicorn."""
    _LOG.info("EasyPages listening on %s:%d", config.HOST, config.PORT)
    uvicorn.run("easypages.main:app", host=config.HOST, port=config.PORT, proxy_headers=True)


if __name__ == "__main__":
    main()
