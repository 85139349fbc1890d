"""Application entrypoint.

Running ``python main.py`` starts the Telegram bot and the background
thread that purges abandoned conversations.
"""
from __future__ import annotations

import logging
import signal
import sys

from xui_admin.config import ConfigError, load_settings
from xui_admin.handlers import BotApp
from xui_admin.state import StateSweeper, UserStateStore

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOGGER = logging.getLogger(__name__)


def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        LOGGER.error("invalid configuration: %s", exc)
        return 1

    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)

    states = UserStateStore()
    app = BotApp(settings, states=states)
    sweeper = StateSweeper(states)
    sweeper.start()

    def handle_stop(signum: int, frame) -> None:  # pragma: no cover - signal handler
        LOGGER.info("received stop signal %s", signum)
        sweeper.stop()
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, handle_stop)

    try:
        app.run()
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        LOGGER.info("exiting")
    finally:
        sweeper.stop()
        sweeper.join(timeout=5)
    return 0


if __name__ == "__main__":
    sys.exit(main())
