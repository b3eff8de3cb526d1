"""Application entrypoint for the order fulfillment API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.v1.router import get_api_router
from app.core.config import get_config
from app.core.exceptions import OrderEngineError
from app.core.startup import bootstrap

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    cfg = get_config()
    app = FastAPI(title=cfg.APP_NAME, version=cfg.APP_VERSION)
    app.include_router(get_api_router())

    @app.exception_handler(OrderEngineError)
    async def handle_order_engine_error(request: Request, exc: OrderEngineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "api.request.failed",
                extra={"event": "api.request.failed", "error": exc.message},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request body.", "details": jsonable_encoder(exc.errors())},
        )

    @app.get("/")
    def root() -> dict:
        return {"service": cfg.APP_NAME, "version": cfg.APP_VERSION, "api_prefix": cfg.API_PREFIX}

    return app


# Expose ASGI app for `uvicorn app.main:app`.
app = create_app()


if __name__ == "__main__":
    import uvicorn

    bootstrap()
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)
