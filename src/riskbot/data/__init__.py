"""Portfolio risk persistence layer.

Provides SQLite database management and the typed read/write store for
portfolios, performance metrics, closed trades, price bars and the audit log.
"""

from riskbot.data.database import RiskDatabase
from riskbot.data.store import PortfolioStore

__all__ = [
    "PortfolioStore",
    "RiskDatabase",
]
