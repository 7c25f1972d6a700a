"""Main entry point for the narrative tracing service."""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from narrative_tracing.api import create_fastapi_app
from narrative_tracing.app import Application
from narrative_tracing.config import load_settings
from narrative_tracing.logging_config import setup_logging


def main():
    """Run the application."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")

    # Get configuration from environment
    settings = load_settings()
    setup_logging(settings.log_level)

    # Create FastAPI app
    app = create_fastapi_app(Application(settings=settings))

    # Run with uvicorn
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
