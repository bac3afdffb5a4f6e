#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "sheetdb",
#     "uvicorn",
# ]
# ///

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from sheetdb.app import create_app
from sheetdb.config import Settings, configure_logging


def main() -> None:
    """Serve the shop API on SHEETDB_HOST:SHEETDB_PORT."""
    load_dotenv()
    settings = Settings.from_env()
    log = configure_logging(settings.log_level)
    log.info("Serving %s from %s", settings.name, settings.database_url)

    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
