"""calproxy - serve many upstream calendar feeds as one merged calendar.

Top-level imports are kept light; the server stack is imported when
``run_server`` is called.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Install a colorized console handler on the root logger.

    Honors CALPROXY_DEBUG (truthy values: "1", "true", "yes", "on") by
    forcing DEBUG, so fetch and parse details can be surfaced without
    changing flags.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    if os.environ.get("CALPROXY_DEBUG", "").strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)

    root = logging.getLogger()
    # Existing root handlers are left alone.
    if not root.handlers:
        console = logging.StreamHandler(stream=sys.stderr)
        # 14:02:11 INFO    [3f2a...] calproxy.calendar.aggregator: Aggregated 12 entries ...
        console.setFormatter(
            ColoredFormatter(
                "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s [%(request_id)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "bold_red",
                },
                defaults={"request_id": "-"},
            )
        )
        root.addHandler(console)

    root.setLevel(level)
    logging.getLogger(__name__).debug("Console logging at %s", logging.getLevelName(level))


def run_server(args: Optional[object] = None) -> None:
    """Build settings from .env, environment and ``args`` and run the server.

    Blocks until SIGINT/SIGTERM.

    Raises:
        ConfigError: If the target URL is missing or invalid
    """
    import logging
    import os
    from pathlib import Path

    _init_logging(os.environ.get("CALPROXY_LOG_LEVEL"))

    from calproxy.api.server import start_server
    from calproxy.core.config_manager import ConfigManager
    from calproxy.proxy_logging import configure_proxy_logging

    logger = logging.getLogger(__name__)

    env_file = getattr(args, "env_file", None)
    manager = ConfigManager(Path(env_file) if env_file else None)
    settings = manager.build_settings(args)

    configure_proxy_logging(debug_mode=settings.debug_logging, log_level=settings.log_level)
    logger.info("configured target=%s", settings.target)

    start_server(settings)
