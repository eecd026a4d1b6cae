import logging
from logging import INFO

from tortoise import Tortoise

from shopilent.core.config import DB_URL

log = logging.getLogger(__name__)

# Set logging level for Tortoise ORM
logging.getLogger("tortoise").setLevel(INFO)

# Define all models modules for the ORM
MODELS_MODULES = [
    "shopilent.models.order",
    "shopilent.models.payment",
    "shopilent.models.outbox",
    "shopilent.models.processed_event",
]


async def init_db(db_url: str = DB_URL, generate_schemas: bool = True) -> None:
    """Initializes the Tortoise ORM connection and optionally generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
            use_tz=True,
            timezone="UTC",
        )
        if generate_schemas:
            # Safe on an existing database: only missing tables are created
            await Tortoise.generate_schemas(safe=True)
        log.info("Database connection established.")
    except Exception:
        log.exception("Could not connect to database.")
        # Re-raise to prevent the application from starting without a database
        raise


async def close_db() -> None:
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
