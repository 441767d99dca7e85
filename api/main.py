"""
FastAPI application entrypoint.
"""
from __future__ import annotations
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from core.broadcast import Broadcaster
from core.classifier import EmotionClassifierStage
from core.config import Settings
from core.detector import FaceDetectorStage
from core.negotiation import NegotiationHandler
from core.pipeline import EmotionPipeline
from core.registry import SessionRegistry

logger = logging.getLogger(__name__)


def build_pipeline(settings: Settings, broadcaster: Broadcaster) -> EmotionPipeline:
    return EmotionPipeline(
        detector=FaceDetectorStage(settings),
        classifier=EmotionClassifierStage(settings),
        broadcaster=broadcaster,
    )


def create_app(
    settings: Settings | None = None,
    pipeline: EmotionPipeline | None = None,
    broadcaster: Broadcaster | None = None,
    pc_factory=None,
) -> FastAPI:
    """
    Build the service with its collaborators wired in.

    Args:
        settings: Runtime settings (defaults to environment).
        pipeline: Inference pipeline; built from settings when omitted.
        broadcaster: Dispatcher shared by the pipeline and the /ws/emotion channel.
        pc_factory: Peer-connection factory override (tests).
    """
    settings = settings or Settings()
    broadcaster = broadcaster or (pipeline.broadcaster if pipeline is not None else Broadcaster())
    pipeline = pipeline or build_pipeline(settings, broadcaster)
    registry = SessionRegistry()
    negotiator = NegotiationHandler(settings, registry, pipeline, pc_factory=pc_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Initialize both engines before accepting connections; failure aborts startup
        logger.info("[startup] initializing face detector and emotion model...")
        try:
            await pipeline.warm_up()
        except Exception:
            logger.critical("[startup] failed to initialize inference engines; refusing to serve")
            raise
        logger.info(f"[ ready ] http://{settings.HOST}:{settings.PORT}")
        yield
        await negotiator.close_all()

    app = FastAPI(title="Live Interview Emotion API", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.CORS_ORIGIN_REGEX,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )
    app.state.settings = settings
    app.state.broadcaster = broadcaster
    app.state.pipeline = pipeline
    app.state.registry = registry
    app.state.negotiator = negotiator
    app.include_router(router)

    @app.get("/health")
    def health() -> dict:
        """
        Health check endpoint.

        Returns:
            dict: Status plus engine readiness and live session count.
        """
        status = "error" if pipeline.failed else ("ok" if pipeline.ready else "starting")
        return {"status": status, "sessions": len(registry)}

    return app


settings = Settings()
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
