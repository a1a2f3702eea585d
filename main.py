"""
FastAPI应用主入口
"""
import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import (
    build_payment_service,
    close_gateways,
    get_uow_factory,
)
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from api.routes import alipay, order_info, product, wxpay
from application.services.reconciler import Reconciler
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger, configure_logging
from core.response import success_response
from core.settings import payment_settings
from domain.common.exceptions import GatewayNotConfiguredException
from domain.order.entity import PaymentType
from domain.product.entity import Product
from infrastructure.database import create_tables
from infrastructure.tasks import start_reconciler


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)

# 开发环境的演示商品（价格单位：分）
DEMO_PRODUCTS = (
    ("Java课程", 1),
    ("大数据课程", 1),
    ("前端课程", 1),
    ("UI课程", 1),
)


async def seed_demo_products() -> None:
    async with get_uow_factory()() as uow:
        if await uow.product_repository.list_all():
            return
        for title, price in DEMO_PRODUCTS:
            await uow.product_repository.create(Product(id=None, title=title, price=price))
    logger.info("demo_products_seeded", count=len(DEMO_PRODUCTS))


def build_reconciler() -> Reconciler:
    """只为已配置的支付方式启动对账"""
    services = {}
    for payment_type in PaymentType:
        try:
            services[payment_type] = build_payment_service(payment_type)
        except GatewayNotConfiguredException as exc:
            logger.warning("reconciler_gateway_skipped", payment_type=payment_type.value, missing=exc.details["missing"])
    return Reconciler(
        services,
        get_uow_factory(),
        stale_after_minutes=payment_settings.reconciler.stale_after_minutes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）
    if settings.DEBUG:
        await create_tables()
        await seed_demo_products()
        logger.info("database_initialized", message="Database tables created (development)")

    stop_event = asyncio.Event()
    runners = []
    if payment_settings.reconciler.enabled:
        runners = start_reconciler(
            build_reconciler(),
            interval_seconds=payment_settings.reconciler.interval_seconds,
            stop_event=stop_event,
        )
        logger.info("reconciler_started", tasks=[r.name for r in runners])

    yield

    stop_event.set()
    for runner in runners:
        await runner.stop()
    await close_gateways()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="微信支付 / 支付宝 下单、回调与对账服务",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(wxpay.router)
app.include_router(alipay.router)
app.include_router(order_info.router)
app.include_router(product.router)


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8090,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
