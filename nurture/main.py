"""ASGI entrypoint: `uvicorn nurture.main:app`."""

from __future__ import annotations

from fastapi import FastAPI

from nurture.api.v1.router import get_api_router
from nurture.core.config import get_config


def create_app() -> FastAPI:
    cfg = get_config()
    app = FastAPI(title=cfg.APP_NAME, version=cfg.APP_VERSION)
    app.include_router(get_api_router())

    @app.get("/")
    def root() -> dict:
        return {"service": cfg.APP_NAME, "version": cfg.APP_VERSION, "api_prefix": cfg.API_PREFIX}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from nurture.core.startup import bootstrap

    bootstrap()
    uvicorn.run(app, host=get_config().API_HOST, port=get_config().API_PORT)
