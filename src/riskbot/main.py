"""Entry point wiring for the portfolio risk engine.

Component wiring order (in open_monitor):
1. AppSettings (configuration)
2. Logging setup
3. RiskDatabase (SQLite, WAL mode)
4. PortfolioStore
5. PortfolioMonitor (risk state machine, performance calculator, indicator tracker)

The scheduler that calls the monitor's jobs and the notifier that delivers
alerts are supplied by the host process.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from riskbot.config import AppSettings
from riskbot.data.database import RiskDatabase
from riskbot.data.store import PortfolioStore
from riskbot.logging import get_logger, setup_logging
from riskbot.monitor import Notifier, PortfolioMonitor


@asynccontextmanager
async def open_monitor(
    notifier: Notifier, settings: AppSettings | None = None
) -> AsyncIterator[PortfolioMonitor]:
    """Build a PortfolioMonitor over an open database for the block's lifetime.

    Args:
        notifier: Alert delivery collaborator.
        settings: Application settings; loaded from the environment if omitted.
    """
    settings = settings or AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("riskbot.main")

    async with RiskDatabase(settings.storage.db_path) as database:
        monitor = PortfolioMonitor(PortfolioStore(database), notifier, settings=settings)
        logger.info(
            "monitor_started",
            db_path=settings.storage.db_path,
            log_level=settings.log_level,
            benchmarks=settings.performance.benchmark_symbols,
        )
        try:
            yield monitor
        finally:
            logger.info("monitor_stopped")
