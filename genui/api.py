"""Thin HTTP surface over the generation pipeline."""
from typing import Any, Dict, Optional

import prometheus_client as prom
from fastapi import Body, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from core.errors import ConfigError, ErrorCategory, GenUIError, error_payload
from core.logging import logger

from genui.orchestrator import GenerationOrchestrator, GenerationRequest


def create_app(orchestrator: Optional[GenerationOrchestrator] = None) -> FastAPI:
    if orchestrator is None:
        from genui.bootstrap import build_orchestrator
        orchestrator = build_orchestrator()

    app = FastAPI(title="genui-pipeline")
    app.state.orchestrator = orchestrator
    config_store = orchestrator.config_store

    @app.exception_handler(GenUIError)
    async def _pipeline_error(request: Request, exc: GenUIError) -> JSONResponse:
        payload = error_payload(exc)
        logger.info(f"{request.method} {request.url.path} -> {exc.category.http_status} {payload['type']}")
        return JSONResponse(status_code=exc.category.http_status, content=payload)

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} -> 500 {type(exc).__name__}: {exc}", exc_info=exc)
        return JSONResponse(status_code=ErrorCategory.INTERNAL.http_status, content=error_payload(exc))

    @app.post("/generate")
    async def generate(payload: Any = Body(...)) -> Dict[str, Any]:
        result = await orchestrator.generate(GenerationRequest.from_dict(payload))
        return result.to_dict()

    @app.get("/config")
    async def get_config() -> Dict[str, Any]:
        return config_store.status()

    @app.put("/config")
    async def update_config(changes: Any = Body(...)) -> Dict[str, Any]:
        if not isinstance(changes, dict):
            raise ConfigError("Config update must be an object")
        config_store.update(**changes)
        orchestrator.apply_runtime_config()
        return config_store.status()

    @app.get("/cache/stats")
    async def cache_stats() -> Dict[str, Any]:
        return orchestrator.cache.stats().to_dict()

    @app.delete("/cache")
    async def clear_cache() -> Dict[str, Any]:
        orchestrator.cache.clear()
        logger.info("Cache cleared via API")
        return orchestrator.cache.stats().to_dict()

    @app.get("/providers")
    async def providers() -> Dict[str, Any]:
        registry = orchestrator.registry
        availability = await registry.availability()
        return {
            "default": registry.default,
            "providers": [
                {
                    "name": name,
                    "model": registry.resolve(name).get_model_name(),
                    "available": available,
                }
                for name, available in availability.items()
            ],
        }

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return orchestrator.metrics.health_check(
            cache_stats=orchestrator.cache.stats().to_dict(),
            providers=await orchestrator.registry.availability(),
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(orchestrator.metrics.export(), media_type=prom.CONTENT_TYPE_LATEST)

    return app
