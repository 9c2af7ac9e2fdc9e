import logging
import sys

import uvicorn

from sentry_tunnel.vars import HOST, LOG_LEVEL, PORT

logger = logging.getLogger("uvicorn.error")


def main() -> None:
    """Run the tunnel until it is stopped; exit non-zero if it never started."""
    config = uvicorn.Config(
        "sentry_tunnel.server:app", host=HOST, port=PORT, log_level=LOG_LEVEL
    )
    server = uvicorn.Server(config)

    logger.info(f"Listening on {HOST}:{PORT}")
    server.run()

    if not server.started:
        logger.critical(f"Sentry tunnel could not listen on {HOST}:{PORT}")
        sys.exit(1)


if __name__ == "__main__":
    main()
