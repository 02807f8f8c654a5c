"""Standalone launcher for the configuration web app."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Optional, Sequence

from .. import config as ic_config
from . import create_app

logger = logging.getLogger(__name__)


def parse_bind(value: str):
    """Split a "host:port" bind address."""
    host, _, port = value.rpartition(":")
    return host, int(port)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve the label check and defaults endpoints.

    The bind address comes from --bind, else the web_bind setting.
    """
    parser = argparse.ArgumentParser(description="Checkpoint step configuration endpoints")
    parser.add_argument("--bind", help="host:port to listen on")
    parser.add_argument("--config", help="checkpoint config file")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    if args.config:
        os.environ["INTEGRITY_CHECKPOINT_CONFIG"] = args.config
        ic_config.reset_config()

    bind = args.bind or ic_config.checkpoint_web_bind()
    try:
        host, port = parse_bind(bind)
    except ValueError:
        parser.error(f"invalid bind address: {bind}")

    app = create_app()
    logger.info("Configuration web app listening on %s:%d", host, port)
    app.run(host=host, port=port, debug=args.debug)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
