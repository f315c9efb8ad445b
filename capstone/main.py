"""FastAPI 入口：路由注册、异常映射与数据库表初始化。"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from capstone.api.v2 import router as api_v2_router
from capstone.config import get_settings
from capstone.db import Base, engine
from capstone.exceptions import CapstoneError
from capstone.logging_config import generate_request_id, set_request_id, setup_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """应用工厂，便于测试与拓展路由。"""

    settings = get_settings()
    setup_logging(settings)
    app = FastAPI(title="Capstone Evaluation API", version="0.1.0")

    @app.on_event("startup")
    def init_models() -> None:
        """启动时确保表存在。"""

        Base.metadata.create_all(bind=engine)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(CapstoneError)
    async def handle_capstone_error(request: Request, exc: CapstoneError) -> JSONResponse:
        logger.info(
            "Request rejected: %s %s -> %s %s",
            request.method, request.url.path, exc.status_code, exc.code,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "environment": settings.environment}

    app.include_router(api_v2_router)
    return app


app = create_app()
