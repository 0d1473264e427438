import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
import asyncpg
import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

load_dotenv()

# asyncpg pool shared by every request handler and the chat relay
db_pool = None


def _pool_options() -> dict:
    return {
        "min_size": int(os.getenv("DATABASE_POOL_MIN", "1")),
        "max_size": int(os.getenv("DATABASE_POOL_MAX", "20")),
        "command_timeout": float(os.getenv("DATABASE_COMMAND_TIMEOUT", "60")),
    }


async def init_db(dsn: str = None):
    """
    Create the connection pool. Called once at application startup;
    ``dsn`` defaults to DATABASE_URL.
    """
    global db_pool
    dsn = dsn or os.getenv("DATABASE_URL")
    if not dsn:
        logger.error("DATABASE_URL environment variable is not set.")
        raise RuntimeError("DATABASE_URL environment variable is not set.")

    options = _pool_options()
    logger.info(f"Initializing database pool (min={options['min_size']}, max={options['max_size']})...")
    try:
        db_pool = await asyncpg.create_pool(dsn=dsn, **options)
    except Exception as e:
        logger.exception(f"Error initializing database: {str(e)}")
        raise
    logger.info("Database pool ready.")


async def close_db():
    global db_pool
    if db_pool:
        logger.info("Closing database pool...")
        await db_pool.close()
        db_pool = None


@asynccontextmanager
async def get_db_connection():
    """Use as 'async with get_db_connection() as conn:'"""
    if db_pool is None:
        raise RuntimeError("Database connection pool is not initialized. Call init_db() first.")
    conn = await db_pool.acquire()
    try:
        yield conn
    finally:
        await db_pool.release(conn)


async def execute_query(sql, params=None, fetch_one=False, fetch_value=False):
    """
    Run a query with $1, $2, ... placeholders.
    Returns all rows, a single row with ``fetch_one``, or the first column of
    the first row with ``fetch_value``. Parameter values are never logged.
    """
    args = tuple(params or ())
    logger.debug(f"SQL: {sql.strip().splitlines()[0][:100]} ({len(args)} params)")
    try:
        async with get_db_connection() as conn:
            if fetch_value:
                return await conn.fetchval(sql, *args)
            if fetch_one:
                return await conn.fetchrow(sql, *args)
            return await conn.fetch(sql, *args)
    except Exception as e:
        logger.exception(f"Database query error: {str(e)}")
        raise


async def ping() -> bool:
    """True when the pool can run a trivial query."""
    if db_pool is None:
        return False
    try:
        return await execute_query("SELECT 1", fetch_value=True) == 1
    except Exception:
        return False
