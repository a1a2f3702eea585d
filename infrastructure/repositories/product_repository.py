"""
商品仓储实现
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.product.entity import Product
from domain.product.repository import ProductRepository
from infrastructure.models.product import ProductModel


class SQLAlchemyProductRepository(ProductRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            title=model.title,
            price=model.price,
            create_time=model.create_time,
            update_time=model.update_time,
        )

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        result = await self.session.execute(
            select(ProductModel).where(ProductModel.id == product_id)
        )
        db_product = result.scalar_one_or_none()
        return self._to_entity(db_product) if db_product else None

    async def list_all(self) -> List[Product]:
        result = await self.session.execute(select(ProductModel).order_by(ProductModel.id.asc()))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def create(self, product: Product) -> Product:
        now = datetime.now(timezone.utc)
        db_product = ProductModel(
            id=product.id,
            title=product.title,
            price=product.price,
            create_time=product.create_time or now,
            update_time=product.update_time or now,
        )
        self.session.add(db_product)
        await self.session.flush()
        await self.session.refresh(db_product)
        return self._to_entity(db_product)
