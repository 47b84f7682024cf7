import logging
from typing import Any, Dict, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import NOT_DELETED, create_document, find_page, serialize, to_object_id, utc_now
from errors import NotFound
from pagination import PageParams, combine, search_condition
from schemas import Product

logger = logging.getLogger(__name__)

PRODUCT_SEARCH_FIELDS = ("name", "description")


class ProductCatalog:
    collection_name = "product"

    def __init__(self, database: Database):
        self.collection = database[self.collection_name]
        self.database = database

    def ensure_indexes(self) -> None:
        self.collection.create_index([("createdAt", DESCENDING)])

    def _id_query(self, product_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        oid = to_object_id(product_id)
        if oid is None:
            return None
        return combine({"_id": oid}, {} if include_deleted else NOT_DELETED)

    def list_public(self, params: PageParams) -> Dict[str, Any]:
        query = combine(
            {"isActive": True},
            NOT_DELETED,
            search_condition(params.search, PRODUCT_SEARCH_FIELDS),
        )
        return find_page(self.collection, query, params)

    def list_admin(self, params: PageParams, status: Optional[str] = None) -> Dict[str, Any]:
        active: Dict[str, Any] = {}
        if status == "active":
            active = {"isActive": True}
        elif status == "inactive":
            active = {"isActive": False}
        query = combine(NOT_DELETED, active, search_condition(params.search, PRODUCT_SEARCH_FIELDS))
        return find_page(self.collection, query, params)

    def get_by_id(self, product_id: str, include_deleted: bool = False) -> Dict[str, Any]:
        """Look a product up by id.

        Soft-deleted products are only returned with ``include_deleted``,
        which no HTTP route uses.
        """
        query = self._id_query(product_id, include_deleted)
        doc = self.collection.find_one(query) if query else None
        if doc is None:
            raise NotFound("Product not found")
        return serialize(doc)

    def get_public(self, product_id: str) -> Dict[str, Any]:
        product = self.get_by_id(product_id)
        if not product.get("isActive", True):
            raise NotFound("Product not found")
        return product

    def create(self, product: Product) -> Dict[str, Any]:
        return serialize(create_document(self.database, self.collection_name, product))

    def update(self, product_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        query = self._id_query(product_id)
        if query is None:
            raise NotFound("Product not found")
        doc = self.collection.find_one_and_update(
            query,
            {"$set": {**changes, "updatedAt": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFound("Product not found")
        return serialize(doc)

    def soft_delete(self, product_id: str) -> None:
        query = self._id_query(product_id)
        if query is None:
            raise NotFound("Product not found")
        now = utc_now()
        result = self.collection.update_one(
            query,
            {"$set": {"isDeleted": {"status": True, "deletedAt": now}, "updatedAt": now}},
        )
        if result.matched_count == 0:
            raise NotFound("Product not found")
        logger.info("Product %s soft deleted", product_id)
