"""
FlowForge scheduler daemon entry point
"""
import asyncio
import logging

from dotenv import load_dotenv

# .env must be loaded before settings are read
load_dotenv()

from flowforge.config import load_settings
from flowforge.runtime import configure_logging, run_scheduler


logger = logging.getLogger(__name__)


if __name__ == "__main__":
    settings = load_settings()
    configure_logging(settings.log_level)

    logger.info(f"Starting scheduler against {settings.database_url.split('@')[-1]}")
    asyncio.run(run_scheduler(settings))
