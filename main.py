"""Main entry point for the research-stream server."""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from research_stream.api import create_fastapi_app
from research_stream.config import Settings
from research_stream.logging_config import setup_logging


def main():
    """Run the application."""
    project_root = Path(__file__).resolve().parent
    load_dotenv(project_root / ".env")
    setup_logging()

    settings = Settings.from_env()

    from research_stream.app import Application

    app = create_fastapi_app(Application(settings))

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
        log_config=None,
    )


if __name__ == "__main__":
    main()
