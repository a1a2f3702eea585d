"""商品API路由"""
from fastapi import APIRouter, Depends

from api.dependencies import get_order_service
from application.dtos.payments import ProductDTO
from application.services.order_service import OrderService
from core.response import success_response


router = APIRouter(prefix="/api/product", tags=["商品管理"])


@router.get("/list", summary="商品列表")
async def list_products(service: OrderService = Depends(get_order_service)):
    products = await service.list_products()
    return success_response(
        data={"productList": [ProductDTO(id=p.id, title=p.title, price=p.price) for p in products]}
    )
