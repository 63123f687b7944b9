# reporting/api/app.py
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import uvicorn

from reporting.api import dependencies
from reporting.api.schemas import HealthResponse

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("Starting Merchant Reports API")

    from config.settings import get_settings
    from reporting.engine.core import ReportEngine, get_repository

    settings = get_settings()
    repository = get_repository(settings)
    dependencies.set_engine(ReportEngine(repository, settings.report))
    logger.info(f"Report engine initialized with {settings.app.order_source} order source")

    yield

    # 清理资源
    logger.info("Shutting down Merchant Reports API")
    db = getattr(repository, "db", None)
    if db is not None:
        db.close()
    dependencies.set_engine(None)


# 创建FastAPI应用
app = FastAPI(
    title="Merchant Reports API",
    description="商户报表与营收异常检测API",
    version=VERSION,
    lifespan=lifespan
)

# CORS配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 导入路由
from reporting.api.routes import router, INTERNAL_ERROR  # noqa: E402

app.include_router(router, prefix="/api/v1")


# 全局异常处理
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": INTERNAL_ERROR})


# 根路径
@app.get("/")
async def root():
    """根路径"""
    return {
        "name": "Merchant Reports API",
        "version": VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


# 健康检查
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """健康检查端点"""
    engine = dependencies._engine

    health_status = {
        "status": "healthy",
        "version": VERSION,
        "engine_status": "running" if engine else "not initialized",
        "order_source": type(engine.repository).__name__ if engine else "none",
    }

    if engine is None:
        health_status["status"] = "degraded"
        health_status["message"] = "Engine not initialized"

    return health_status


# 开发模式下的自动重载
if __name__ == "__main__":
    import os

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    port = int(os.getenv("API_PORT", 8000))

    uvicorn.run(
        "reporting.api.app:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info"
    )
