from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, require_roles, AuthenticatedUser
from backend.app.core.exceptions import ServiceError, http_error
from backend.app.core.logging import get_logger
from backend.app.schemas import ProductCreate, ProductResponse
from backend.app.services.products import ProductService

router = APIRouter()
logger = get_logger(__name__)


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    data: ProductCreate,
    current_user: AuthenticatedUser = Depends(require_roles("seller")),
    session: AsyncSession = Depends(get_session),
):
    """Create a product. Requires an active subscription (free trial counts)."""
    try:
        product = await ProductService(session).create_product(
            seller_id=current_user.id,
            name=data.name,
            price=data.price,
            stock=data.stock,
            description=data.description,
            category=data.category,
        )
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning("Product creation failed", seller_id=current_user.id, error=e.message)
        raise http_error(e)
    return product


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    session: AsyncSession = Depends(get_session),
):
    try:
        return await ProductService(session).get_product(product_id)
    except ServiceError as e:
        raise http_error(e)
