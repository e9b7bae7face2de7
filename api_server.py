from __future__ import annotations  # FastAPI server exposing ECD session delivery

import logging
from pathlib import Path
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.registry_routes import router as registry_router
from api.report_routes import router as report_router
from api.routes import router as session_router
from config.providers import default_route, load_config, resolve_route
from config.registry import bind_provider, provider_key
from config.settings import settings
from ecd.configs import POLICY_TYPES
from policy_gateway import provider_for


logger = logging.getLogger(__name__)


def bind_policy_providers() -> List[str]:  # Bind HTTP providers for adaptive policy types from settings
    bound: List[str] = []
    cfg = load_config(Path(settings.POLICY_CONFIG_PATH)) if settings.POLICY_CONFIG_PATH else None
    for policy_type in POLICY_TYPES:
        route = resolve_route(cfg, policy_type) if cfg is not None else None
        if route is None and settings.POLICY_PROVIDER_URL:
            route = default_route(
                settings.POLICY_PROVIDER_URL,
                timeout_s=settings.POLICY_TIMEOUT_S,
                max_retries=settings.POLICY_MAX_RETRIES,
            )
        if route is None:
            continue
        bind_provider(provider_key(policy_type), provider_for(route))
        bound.append(policy_type)
    if bound:
        logger.info("Bound policy providers for %s", ", ".join(bound))
    else:
        logger.info("No policy provider configured; adaptive sessions use fixed order")
    return bound


def create_app() -> FastAPI:
    application = FastAPI(title="ECD Session Delivery API")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(registry_router)
    application.include_router(session_router)
    application.include_router(report_router)
    return application


bind_policy_providers()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
