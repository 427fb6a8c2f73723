# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with soft delete, pagination and connection pooling.
"""

import os
import logging
from datetime import datetime
from typing import List, Dict, Optional, Any
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from bson import ObjectId
from bson.errors import InvalidId

logger = logging.getLogger(__name__)

PROFILES = "profiles"
ORDERS = "orders"
REJECTION_LOGS = "rejection_logs"
RATINGS = "ratings"
DRIVER_STATS = "driver_stats"
WALLET_TRANSACTIONS = "wallet_transactions"
WITHDRAWAL_REQUESTS = "withdrawal_requests"
NOTIFICATIONS = "notifications"
PUSH_SUBSCRIPTIONS = "push_subscriptions"
DELIVERY_CONFIGS = "delivery_configs"
PRODUCTS = "products"
COUPONS = "coupons"
PROMOTIONS = "promotions"


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Dict], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size
        self.has_next = page < self.total_pages
        self.has_prev = page > 1


def _expose_id(document: Dict) -> Dict:
    """Replace ``_id`` with its string form under ``id``."""
    if "_id" in document:
        document["id"] = str(document["_id"])
        del document["_id"]
    return document


class MongoDBService:
    """MongoDB service with soft delete and connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/entregas_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'entregas_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _validate_object_id(self, doc_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid ObjectId format: {doc_id}")

    def _build_query(self, filters: Dict = None, include_deleted: bool = False) -> Dict:
        """Build a query that hides soft-deleted records unless asked otherwise."""
        query = {}

        if not include_deleted:
            query["deletedAt"] = None

        if filters:
            query.update(filters)

        return query

    def _add_timestamps(self, document: Dict, user_id: str, is_update: bool = False) -> Dict:
        """Add creation and update timestamps to document."""
        now = datetime.utcnow()

        if not is_update:
            document["createdAt"] = now
            document["createdBy"] = user_id

        document["updatedAt"] = now
        document["updatedBy"] = user_id

        return document

    # CRUD Operations

    def create(self, collection: str, document: Dict, user_id: str) -> str:
        """Insert a document and return its ID as string."""
        try:
            document = self._add_timestamps(document, user_id)

            if "_id" not in document:
                document["_id"] = ObjectId()

            collection_obj = self.get_collection(collection)
            result = collection_obj.insert_one(document)

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ValueError("Document with this identifier already exists")
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def find(self, collection: str, filters: Dict = None, include_deleted: bool = False,
             sort_by: str = "createdAt", sort_order: int = DESCENDING,
             limit: int = 0) -> List[Dict]:
        """Find documents with optional filters, newest first by default."""
        try:
            query = self._build_query(filters, include_deleted)
            collection_obj = self.get_collection(collection)

            cursor = collection_obj.find(query).sort(sort_by, sort_order)
            if limit:
                cursor = cursor.limit(limit)
            documents = [_expose_id(doc) for doc in cursor]

            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def find_one(self, collection: str, doc_id: str, include_deleted: bool = False) -> Optional[Dict]:
        """Find a single document by ID."""
        try:
            object_id = self._validate_object_id(doc_id)
            query = self._build_query({"_id": object_id}, include_deleted)

            collection_obj = self.get_collection(collection)
            document = collection_obj.find_one(query)

            if document:
                logger.debug(f"Found document {doc_id} in {collection}")
                return _expose_id(document)

            logger.debug(f"Document {doc_id} not found in {collection}")
            return None

        except ValueError as e:
            logger.error(f"Invalid document ID {doc_id}: {e}")
            return None
        except Exception as e:
            logger.error(f"Failed to find document {doc_id} in {collection}: {e}")
            raise

    def find_one_by(self, collection: str, filters: Dict, include_deleted: bool = False) -> Optional[Dict]:
        """Find the first document matching ``filters``."""
        try:
            query = self._build_query(filters, include_deleted)
            document = self.get_collection(collection).find_one(query)
            return _expose_id(document) if document else None
        except Exception as e:
            logger.error(f"Failed to find document in {collection}: {e}")
            raise

    def update(self, collection: str, doc_id: str, updates: Dict, user_id: str) -> bool:
        """Update a document by ID."""
        try:
            object_id = self._validate_object_id(doc_id)
            query = self._build_query({"_id": object_id})

            updates = self._add_timestamps(dict(updates), user_id, is_update=True)
            updates.pop("_id", None)

            collection_obj = self.get_collection(collection)
            result = collection_obj.update_one(query, {"$set": updates})

            if result.matched_count > 0:
                logger.info(f"Updated document {doc_id} in {collection}")
                return True

            logger.warning(f"No document updated for {doc_id} in {collection}")
            return False

        except ValueError as e:
            logger.error(f"Invalid document ID {doc_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def update_many(self, collection: str, filters: Dict, updates: Dict, user_id: str) -> int:
        """Update every live document matching ``filters``; returns the modified count."""
        try:
            query = self._build_query(filters)
            updates = self._add_timestamps(dict(updates), user_id, is_update=True)

            result = self.get_collection(collection).update_many(query, {"$set": updates})
            logger.info(f"Updated {result.modified_count} documents in {collection}")
            return result.modified_count

        except Exception as e:
            logger.error(f"Failed to update documents in {collection}: {e}")
            raise

    def increment(self, collection: str, filters: Dict, amounts: Dict[str, float], user_id: str) -> int:
        """
        Add ``amounts`` to numeric fields of the first live document matching
        ``filters``.

        The filter and the change are applied in one atomic write, so a filter
        such as ``{"stock": {"$gte": 2}}`` guards against going below zero.
        Returns the matched count (0 or 1).
        """
        try:
            query = self._build_query(filters)
            timestamps = self._add_timestamps({}, user_id, is_update=True)

            result = self.get_collection(collection).update_one(query, {"$inc": amounts, "$set": timestamps})
            logger.info(f"Incremented {list(amounts)} on {result.matched_count} documents in {collection}")
            return result.matched_count

        except Exception as e:
            logger.error(f"Failed to increment documents in {collection}: {e}")
            raise

    def soft_delete(self, collection: str, doc_id: str, user_id: str) -> bool:
        """Soft delete a document by setting deletedAt timestamp."""
        try:
            object_id = self._validate_object_id(doc_id)
            query = self._build_query({"_id": object_id})

            now = datetime.utcnow()
            updates = {
                "deletedAt": now,
                "updatedAt": now,
                "updatedBy": user_id
            }

            collection_obj = self.get_collection(collection)
            result = collection_obj.update_one(query, {"$set": updates})

            if result.modified_count > 0:
                logger.info(f"Soft deleted document {doc_id} in {collection}")
                return True

            logger.warning(f"No document soft deleted for {doc_id} in {collection}")
            return False

        except ValueError as e:
            logger.error(f"Invalid document ID {doc_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to soft delete document {doc_id} in {collection}: {e}")
            raise

    def paginate(self, collection: str, page: int = 1, page_size: int = 20,
                 filters: Dict = None, sort_by: str = "createdAt", sort_order: int = DESCENDING,
                 include_deleted: bool = False) -> PaginationResult:
        """Paginate documents with sorting and filtering."""
        try:
            query = self._build_query(filters, include_deleted)
            collection_obj = self.get_collection(collection)

            skip = (page - 1) * page_size
            total = collection_obj.count_documents(query)

            cursor = collection_obj.find(query).sort(sort_by, sort_order).skip(skip).limit(page_size)
            documents = [_expose_id(doc) for doc in cursor]

            logger.debug(f"Paginated {len(documents)} documents from {collection} (page {page})")
            return PaginationResult(documents, total, page, page_size)

        except Exception as e:
            logger.error(f"Failed to paginate documents in {collection}: {e}")
            raise

    def count(self, collection: str, filters: Dict = None, include_deleted: bool = False) -> int:
        """Count documents with optional filters."""
        try:
            query = self._build_query(filters, include_deleted)
            count = self.get_collection(collection).count_documents(query)
            logger.debug(f"Counted {count} documents in {collection}")
            return count

        except Exception as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    # Index Management

    def create_indexes(self) -> None:
        """Create performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            profiles = self.get_collection(PROFILES)
            profiles.create_index("email", unique=True)
            profiles.create_index([("role", ASCENDING), ("isApproved", ASCENDING), ("isBlocked", ASCENDING)])
            profiles.create_index("deletedAt")

            orders = self.get_collection(ORDERS)
            orders.create_index([("clientId", ASCENDING), ("createdAt", DESCENDING)])
            orders.create_index([("driverId", ASCENDING), ("status", ASCENDING)])
            orders.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            orders.create_index("deletedAt")

            rejections = self.get_collection(REJECTION_LOGS)
            rejections.create_index([("driverId", ASCENDING), ("orderId", ASCENDING)])

            ratings = self.get_collection(RATINGS)
            ratings.create_index("orderId", unique=True)
            ratings.create_index([("driverId", ASCENDING), ("createdAt", DESCENDING)])

            stats = self.get_collection(DRIVER_STATS)
            stats.create_index("driverId", unique=True)

            transactions = self.get_collection(WALLET_TRANSACTIONS)
            transactions.create_index([("driverId", ASCENDING), ("createdAt", DESCENDING)])

            withdrawals = self.get_collection(WITHDRAWAL_REQUESTS)
            withdrawals.create_index([("driverId", ASCENDING), ("status", ASCENDING)])
            withdrawals.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])

            notifications = self.get_collection(NOTIFICATIONS)
            notifications.create_index([("userId", ASCENDING), ("isRead", ASCENDING), ("createdAt", DESCENDING)])

            subscriptions = self.get_collection(PUSH_SUBSCRIPTIONS)
            subscriptions.create_index([("userId", ASCENDING), ("token", ASCENDING)], unique=True)

            configs = self.get_collection(DELIVERY_CONFIGS)
            configs.create_index("region", unique=True)

            products = self.get_collection(PRODUCTS)
            products.create_index([("isActive", ASCENDING), ("name", ASCENDING)])
            products.create_index("category")

            coupons = self.get_collection(COUPONS)
            coupons.create_index("code", unique=True)

            promotions = self.get_collection(PROMOTIONS)
            promotions.create_index([("isActive", ASCENDING), ("validUntil", ASCENDING)])

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
