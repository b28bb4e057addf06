"""FastAPI application wiring."""

from typing import Optional

from fastapi import FastAPI

from docpilot.adapters.design.frame_client import FrameClient
from docpilot.adapters.store.http_store import HttpDocumentStore
from docpilot.adapters.web.routes import actions_router
from docpilot.config import AppConfig, __version__
from docpilot.pipeline import ActionPipeline


def build_pipeline(config: Optional[AppConfig] = None) -> ActionPipeline:
    config = config or AppConfig.from_env()
    return ActionPipeline(
        store=HttpDocumentStore(config.store, max_nesting_depth=config.engine.max_nesting_depth),
        design=FrameClient(config.design),
        config=config.engine,
    )


def create_app(pipeline: Optional[ActionPipeline] = None) -> FastAPI:
    app = FastAPI(title="docpilot", version=__version__)
    app.state.pipeline = pipeline or build_pipeline()
    app.include_router(actions_router)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "version": __version__,
            "storeConfigured": app.state.pipeline.store.is_configured,
        }

    return app


def main():
    import uvicorn

    config = AppConfig.from_env()
    uvicorn.run(create_app(build_pipeline(config)), host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
