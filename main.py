"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import coupons as coupon_routes
from api.routes import orders as order_routes
from api.routes import payments as payment_routes
from api.routes import payouts as payout_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.cache import get_redis_cache, init_redis_cache, shutdown_redis_cache
from infrastructure.database import create_tables


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )

    # Redis 仅用于 webhook 去重，连接失败不阻断启动
    if settings.redis.url:
        try:
            cache = await init_redis_cache()
            await cache.ping()
            logger.info("redis_cache_initialized")
        except (RedisError, OSError) as exc:
            logger.error("redis_cache_init_failed", error=str(exc))

    yield

    if settings.redis.url:
        await shutdown_redis_cache()
        logger.info("redis_cache_shutdown")
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="多商户服务预订平台：订单、支付、优惠券与供应商结算",
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
app.include_router(order_routes.router, prefix="/api/v1")
app.include_router(payment_routes.router, prefix="/api/v1")
app.include_router(payout_routes.router, prefix="/api/v1")
app.include_router(coupon_routes.router, prefix="/api/v1")


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
        message="Welcome"
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    data = {"status": "healthy"}
    if settings.redis.url:
        try:
            cache = await get_redis_cache()
            data["redis"] = "ok" if cache is not None and await cache.ping() else "unavailable"
        except (RedisError, OSError):
            data["redis"] = "unavailable"
    return success_response(data=data, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
