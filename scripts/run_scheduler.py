"""Run the session scheduler as a standalone worker (no HTTP server).

Use this when the web process runs with SCHEDULER_ENABLED=0, e.g. behind a
multi-worker WSGI server where each worker would otherwise start its own.
"""

from __future__ import annotations

import logging
import signal
import threading

from dotenv import load_dotenv

from geoattend.config import load_settings
from geoattend.container import build_container
from geoattend.logging_config import configure_logging

logger = logging.getLogger("geoattend.scripts.run_scheduler")


def main() -> None:
    load_dotenv(override=False)
    settings = load_settings()
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"), getattr(settings, "LOG_FORMAT", "standard"))

    container = build_container(settings)
    stopped = threading.Event()

    def _shutdown(signum, _frame):
        logger.info("Received signal %s, stopping", signum)
        stopped.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    container.scheduler.start()
    try:
        stopped.wait()
    finally:
        container.scheduler.stop(timeout=10)
        container.verifier_gateway.shutdown()


if __name__ == "__main__":
    main()
