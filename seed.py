"""
First-run setup: indexes, the bootstrap admin and the shop config.

Runs on application startup and can be run by hand:

    python seed.py
"""
import logging
import sys

from pymongo.database import Database

from auth import AuthService, UserRepository
from orders import OrderRepository
from products import ProductCatalog
from settings import Settings, get_settings
from shop_config import ShopConfigRepository

logger = logging.getLogger(__name__)


def ensure_indexes(database: Database) -> None:
    UserRepository(database).ensure_indexes()
    ProductCatalog(database).ensure_indexes()
    OrderRepository(database).ensure_indexes()


def seed_admin(database: Database, settings: Settings) -> bool:
    if not settings.admin_bootstrap_user or not settings.admin_bootstrap_pass:
        logger.info("ADMIN_BOOTSTRAP_USER/ADMIN_BOOTSTRAP_PASS not set, skipping admin seed")
        return False
    auth = AuthService(UserRepository(database), settings)
    auth.bootstrap_admin(settings.admin_bootstrap_user, settings.admin_bootstrap_pass)
    return True


def seed_shop_config(database: Database, settings: Settings) -> None:
    config = ShopConfigRepository(database, seed=settings.shop_defaults).get_or_create_default()
    logger.info("Shop config ready for %s", config.get("name"))


def run(database: Database, settings: Settings) -> None:
    ensure_indexes(database)
    seed_admin(database, settings)
    seed_shop_config(database, settings)


if __name__ == "__main__":
    from database import db

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if db is None:
        logger.error("Set DATABASE_URL and DATABASE_NAME to seed the database")
        sys.exit(1)
    run(db, settings)
