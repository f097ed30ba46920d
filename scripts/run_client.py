"""Runs the Wired client with repository-relative imports."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Connect to a Wired server and relay chat events as push alerts.")
    parser.add_argument("--config", type=Path, help="YAML/JSON config file (overrides WIRED_CONFIG_FILE)")
    parser.add_argument("--host", help="Server host (overrides config)")
    parser.add_argument("--port", type=int, help="Server port (overrides config)")
    parser.add_argument("--log-level", help="Log level (overrides config)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))

    if args.config:
        os.environ["WIRED_CONFIG_FILE"] = str(args.config)

    # Lazy import after adjusting sys.path
    from wired.bootstrap import serve_forever  # type: ignore
    from wired.config import get_settings  # type: ignore

    settings = get_settings()
    overrides = {
        key: value
        for key, value in (("host", args.host), ("port", args.port), ("log_level", args.log_level))
        if value is not None
    }
    if overrides:
        settings = settings.model_validate({**settings.model_dump(), **overrides})

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        return asyncio.run(serve_forever(settings))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
