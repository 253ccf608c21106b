"""
FastAPI 应用主入口
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware.error_handler import register_exception_handlers
from api.middleware.logging import LoggingMiddleware
from api.routers import proteins, system
from core.config import get_settings
from core.http import ProteinHttpClient
from core.services.protein_service import ProteinService, create_protein_service
from logging_config import setup_logging, get_logger

# 获取配置
settings = get_settings()

# 配置日志
setup_logging()
logger = get_logger(__name__)


def create_app(service: Optional[ProteinService] = None) -> FastAPI:
    """
    创建应用

    Args:
        service: 预先构建的服务实例（测试时注入）；为空时在启动阶段按配置构建
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        应用生命周期管理

        启动时创建共享 HTTP 客户端和数据源；关闭时释放连接池。
        """
        logger.info(
            "application_starting",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment,
        )
        app.state.start_time = datetime.utcnow()

        http: Optional[ProteinHttpClient] = None
        if service is None:
            http = ProteinHttpClient(settings.http)
            app.state.protein_service = create_protein_service(http, settings)
        else:
            app.state.protein_service = service

        logger.info("application_started", **settings.display_config())

        yield

        logger.info("application_shutting_down")
        if http is not None:
            await http.aclose()
        logger.info("application_stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Protein structure search, comparison and ligand tracking over RCSB PDB, PDBe and UniProt",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    if service is not None:
        app.state.protein_service = service

    # ===== 中间件 =====

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    # ===== 路由 =====

    app.include_router(proteins.router, prefix=settings.api_prefix, tags=["Proteins"])
    app.include_router(system.router, prefix=settings.api_prefix, tags=["System"])

    # ===== 全局异常处理 =====

    register_exception_handlers(app)

    return app


app = create_app()


# ===== 开发模式入口 =====

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
