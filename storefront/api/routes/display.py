"""Display reconciliation endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_database
from storefront.campaigns.display import get_display_products, get_display_state

router = APIRouter(prefix="/api/display", tags=["display"])


@router.get("/state")
async def display_state(db: AsyncSession = Depends(get_database)):
    """What the display should be showing now."""
    return await get_display_state(db)


@router.get("/products")
async def display_products(db: AsyncSession = Depends(get_database)):
    return await get_display_products(db)
