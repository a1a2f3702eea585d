from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Product


class ProductRepository(ABC):

    @abstractmethod
    async def get_by_id(self, product_id: int) -> Optional[Product]:
        pass

    @abstractmethod
    async def list_all(self) -> List[Product]:
        pass

    @abstractmethod
    async def create(self, product: Product) -> Product:
        pass
