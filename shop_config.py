import logging
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import utc_now
from schemas import ShopConfig

logger = logging.getLogger(__name__)

# the one and only shop config document
SHOP_CONFIG_ID = "shop"


def _public(doc: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(doc)
    data.pop("_id", None)
    return data


class ShopConfigRepository:
    collection_name = "shopconfig"

    def __init__(self, database: Database, seed: Optional[Dict[str, Any]] = None):
        self.collection = database[self.collection_name]
        self.seed = seed or {}

    def defaults(self) -> Dict[str, Any]:
        return ShopConfig(**self.seed).model_dump()

    def get_or_create_default(self) -> Dict[str, Any]:
        """Return the shop config, creating it from defaults on first use.

        Two concurrent first reads may both try the upsert; the loser hits
        the duplicate key and reads what the winner wrote.
        """
        now = utc_now()
        try:
            doc = self.collection.find_one_and_update(
                {"_id": SHOP_CONFIG_ID},
                {"$setOnInsert": {**self.defaults(), "createdAt": now, "updatedAt": now}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            doc = self.collection.find_one({"_id": SHOP_CONFIG_ID})
        return _public(doc)

    def update(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        self.get_or_create_default()
        doc = self.collection.find_one_and_update(
            {"_id": SHOP_CONFIG_ID},
            {"$set": {**changes, "updatedAt": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Shop config updated: %s", ", ".join(sorted(changes)) or "no fields")
        return _public(doc)

    def reset(self) -> Dict[str, Any]:
        # built-in defaults, not the environment seed
        self.get_or_create_default()
        doc = self.collection.find_one_and_update(
            {"_id": SHOP_CONFIG_ID},
            {"$set": {**ShopConfig().model_dump(), "updatedAt": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Shop config reset to defaults")
        return _public(doc)
