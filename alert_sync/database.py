"""
Database module for the alert sync service
Handles PostgreSQL connections and per-market alert list storage
"""

import json
from typing import List, Optional

import asyncpg
import structlog

from .models import Alert

logger = structlog.get_logger()


class PostgresAlertStore:
    """PostgreSQL alert store: one JSONB alert list per market"""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Establish database connection pool and make sure the schema exists"""
        try:
            self.pool = await asyncpg.create_pool(
                self.database_url,
                min_size=1,
                max_size=5,
                command_timeout=30,
            )
            logger.info("database_pool_created", min_size=1, max_size=5)
        except Exception as e:
            logger.error("database_connection_failed", error=str(e))
            raise

        await self.initialize_schema()

    async def close(self):
        """Close database connection pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("database_pool_closed")

    async def check_connection(self) -> bool:
        """Check if database is connected"""
        if not self.pool:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False

    async def initialize_schema(self):
        """Create the market_alerts table if it doesn't exist"""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS market_alerts (
                        market TEXT PRIMARY KEY,
                        alerts JSONB NOT NULL DEFAULT '[]'::jsonb,
                        updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                    )
                """)
                logger.info("alert_schema_initialized")
        except Exception as e:
            logger.error("schema_initialization_failed", error=str(e))
            raise

    async def get_alerts(self, market: str) -> List[Alert]:
        """Load the alert list of a market (empty when unknown)"""
        async with self.pool.acquire() as conn:
            raw = await conn.fetchval(
                "SELECT alerts FROM market_alerts WHERE market = $1",
                market,
            )
        if raw is None:
            return []
        if isinstance(raw, str):
            raw = json.loads(raw)
        return [Alert.from_dict(data) for data in raw]

    async def save_alerts(self, market: str, alerts: List[Alert]) -> None:
        """Replace the alert list of a market"""
        payload = json.dumps([alert.to_dict() for alert in alerts])
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO market_alerts (market, alerts, updated_at)
                    VALUES ($1, $2::jsonb, NOW())
                    ON CONFLICT (market) DO UPDATE SET
                        alerts = EXCLUDED.alerts,
                        updated_at = EXCLUDED.updated_at
                """, market, payload)
        except Exception as e:
            logger.error("save_alerts_failed", error=str(e), market=market)
            raise
        logger.debug("alerts_saved", market=market, count=len(alerts))
