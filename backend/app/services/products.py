# backend/app/services/products.py
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import AMOUNT_QUANTUM, MAX_AMOUNT
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import products_created_total
from backend.app.models.product import Product
from backend.app.services.subscription import SubscriptionService

logger = get_logger(__name__)


class ProductServiceError(ServiceError):
    """Base exception for product service errors."""


class ProductNotFoundError(ProductServiceError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", 404)


class SubscriptionRequiredError(ProductServiceError):
    def __init__(self):
        super().__init__("An active subscription is required to create products", 403)


class ProductService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: int) -> Product:
        product = await self.session.get(Product, product_id)
        if not product:
            raise ProductNotFoundError(product_id)
        return product

    async def create_product(
        self,
        seller_id: int,
        name: str,
        price: Decimal,
        stock: int = 0,
        description: Optional[str] = None,
        category: Optional[str] = None,
        now=None,
    ) -> Product:
        """Create a product for a seller with an active subscription. Caller must commit."""
        if not await SubscriptionService(self.session).can_create_products(seller_id, now):
            raise SubscriptionRequiredError()
        price = Decimal(str(price))
        if price <= 0:
            raise ProductServiceError("Price must be positive")
        if price > MAX_AMOUNT or price != price.quantize(AMOUNT_QUANTUM):
            raise ProductServiceError("Price must have at most 2 decimal places and fit the amount range")
        if stock < 0:
            raise ProductServiceError("Stock cannot be negative")

        product = Product(
            seller_id=seller_id,
            name=name,
            description=description,
            price=price,
            category=category,
            stock=stock,
            is_available=stock > 0,
        )
        self.session.add(product)
        await self.session.flush()
        products_created_total.labels(seller_id=str(seller_id)).inc()
        logger.info("Product created", product_id=product.id, seller_id=seller_id, price=str(price), stock=stock)
        return product
