from __future__ import annotations

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from .config import load_config
from .http_api import create_app
from .utils import configure_logging


def main() -> None:
    root = Path.cwd()
    load_dotenv(root / ".env")
    config = load_config(root)
    configure_logging(config.bot.log_level)
    app = create_app(root, config=config)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.bot.log_level,
    )


if __name__ == "__main__":
    main()
