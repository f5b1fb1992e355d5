"""
MongoDB storage for tracked products and their price history.
Handles connection, indexing, integer id allocation and CRUD operations.
"""

from typing import List, Optional, Dict, Any
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, ConnectionFailure
import structlog

from .models import Product, PriceSample

logger = structlog.get_logger(__name__)

PRODUCTS_COLLECTION = "products"
PRICE_HISTORY_COLLECTION = "price_history"
COUNTERS_COLLECTION = "counters"


class PriceStore:
    """
    Async MongoDB store for products and price samples.
    """

    def __init__(self, connection_url: str, database_name: str):
        """
        Initialize the store.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.products: Optional[AsyncIOMotorCollection] = None
        self.price_history: Optional[AsyncIOMotorCollection] = None
        self.counters: Optional[AsyncIOMotorCollection] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]
            self.products = self.database[PRODUCTS_COLLECTION]
            self.price_history = self.database[PRICE_HISTORY_COLLECTION]
            self.counters = self.database[COUNTERS_COLLECTION]

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """Create the unique and history indexes."""
        try:
            await self.products.create_index("id", unique=True)
            # One product per page
            await self.products.create_index("url", unique=True)

            await self.price_history.create_index("id", unique=True)
            await self.price_history.create_index(
                [("product_id", ASCENDING), ("timestamp", DESCENDING)]
            )

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def _next_id(self, sequence: str) -> int:
        """Allocate the next integer id for a collection."""
        counter = await self.counters.find_one_and_update(
            {"_id": sequence},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return int(counter["seq"])

    async def create_product(self, name: str, url: str, selector: str) -> Optional[Product]:
        """
        Insert a new product.

        Args:
            name: Display name
            url: Product page URL
            selector: CSS selector for the price element

        Returns:
            The stored Product, or None if a product with this URL already exists
        """
        try:
            product = Product(
                id=await self._next_id(PRODUCTS_COLLECTION),
                name=name,
                url=url,
                selector=selector,
                created_at=datetime.utcnow()
            )
            await self.products.insert_one(product.dict())
            logger.info("Successfully inserted product", product_id=product.id, url=url)
            return product

        except DuplicateKeyError:
            logger.warning("Product already exists", name=name, url=url)
            return None

        except Exception as e:
            logger.error("Failed to insert product", name=name, url=url, error=str(e))
            raise

    async def list_products(self) -> List[Product]:
        """Get all products ordered by id."""
        try:
            cursor = self.products.find({}).sort("id", ASCENDING)
            products = []

            async for product_doc in cursor:
                product_doc.pop('_id', None)
                products.append(Product(**product_doc))

            logger.debug("Retrieved products", count=len(products))
            return products

        except Exception as e:
            logger.error("Failed to retrieve products", error=str(e))
            raise

    async def get_product(self, product_id: int) -> Optional[Product]:
        """
        Retrieve a product by id.

        Args:
            product_id: Product identifier

        Returns:
            Product or None if not found
        """
        try:
            product_doc = await self.products.find_one({"id": product_id})
            if product_doc:
                product_doc.pop('_id', None)
                return Product(**product_doc)
            return None

        except Exception as e:
            logger.error("Failed to retrieve product", product_id=product_id, error=str(e))
            raise

    async def record_price(self, product_id: int, price: float) -> PriceSample:
        """
        Append a price sample for a product.

        Args:
            product_id: Product identifier
            price: Extracted price

        Returns:
            The stored PriceSample
        """
        try:
            sample = PriceSample(
                id=await self._next_id(PRICE_HISTORY_COLLECTION),
                product_id=product_id,
                price=float(price),
                timestamp=datetime.utcnow()
            )
            await self.price_history.insert_one(sample.dict())
            logger.debug("Recorded price", product_id=product_id, price=price)
            return sample

        except Exception as e:
            logger.error("Failed to record price", product_id=product_id, price=price, error=str(e))
            raise

    async def get_price_history(self, product_id: int) -> List[PriceSample]:
        """
        Get all samples for a product, most recent first.

        Args:
            product_id: Product identifier

        Returns:
            List of PriceSample instances
        """
        try:
            cursor = self.price_history.find({"product_id": product_id}).sort(
                [("timestamp", DESCENDING), ("id", DESCENDING)]
            )
            samples = []

            async for sample_doc in cursor:
                sample_doc.pop('_id', None)
                samples.append(PriceSample(**sample_doc))

            return samples

        except Exception as e:
            logger.error("Failed to retrieve price history", product_id=product_id, error=str(e))
            raise

    async def get_latest_price(self, product_id: int) -> Optional[PriceSample]:
        """Get the most recent sample for a product, if any."""
        try:
            sample_doc = await self.price_history.find_one(
                {"product_id": product_id},
                sort=[("timestamp", DESCENDING), ("id", DESCENDING)]
            )
            if sample_doc:
                sample_doc.pop('_id', None)
                return PriceSample(**sample_doc)
            return None

        except Exception as e:
            logger.error("Failed to retrieve latest price", product_id=product_id, error=str(e))
            raise

    async def delete_product(self, product_id: int) -> bool:
        """
        Delete a product and its price history.

        Args:
            product_id: Product identifier

        Returns:
            bool: True if deleted, False if not found
        """
        try:
            history_result = await self.price_history.delete_many({"product_id": product_id})
            result = await self.products.delete_one({"id": product_id})

            if result.deleted_count > 0:
                logger.info(
                    "Successfully deleted product",
                    product_id=product_id,
                    samples_deleted=history_result.deleted_count
                )
                return True

            logger.warning("Product not found for deletion", product_id=product_id)
            return False

        except Exception as e:
            logger.error("Failed to delete product", product_id=product_id, error=str(e))
            raise

    async def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics for monitoring."""
        try:
            return {
                "total_products": await self.products.count_documents({}),
                "total_samples": await self.price_history.count_documents({}),
                "last_updated": datetime.utcnow().isoformat()
            }

        except Exception as e:
            logger.error("Failed to get database stats", error=str(e))
            raise
