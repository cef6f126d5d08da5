from fastapi import Body, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from typing import Any, Optional
import logging
from datetime import datetime

from config.settings import Settings, get_settings
from models.edge_models import EdgeRequest
from models.generation_models import GenerationPayload, StoryType
from models.story_models import SaveResult, StoryDraft
from providers.generation_transport import GENERATION_PATH, TransportFactory
from providers.story_repository import get_story_repository
from providers.upstream_provider import get_upstream_client
from services.edge_gateway import EdgeGateway
from services.generation_service import GenerationService
from services.save_service import MISSING_KEY_CODE, SaveCoordinator
from utils.idempotency import derive_key
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(settings: Optional[Settings] = None,
               generation_service: Optional[GenerationService] = None,
               save_coordinator: Optional[SaveCoordinator] = None,
               edge_gateway: Optional[EdgeGateway] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    for warning in settings.validate_settings():
        logger.warning(warning)

    app = FastAPI(
        title="Story Starter Server",
        description="Story generation proxy, response extraction and idempotent saves",
        version=VERSION
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.generation_service = generation_service or GenerationService(TransportFactory.get_transport(settings))
    app.state.save_coordinator = save_coordinator or SaveCoordinator(get_story_repository(settings))
    app.state.edge_gateway = edge_gateway or EdgeGateway(
        upstream=get_upstream_client(settings),
        rate_limiter=RateLimiter(
            limit=settings.EDGE_RATE_LIMIT_PER_MIN,
            window_seconds=settings.EDGE_RATE_WINDOW_SECONDS
        ),
        max_prompt_length=settings.EDGE_MAX_PROMPT_LENGTH
    )

    register_routes(app)
    return app


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an `Authorization: Bearer ...` header, if any"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _save_response(result: SaveResult) -> JSONResponse:
    if result.ok:
        status_code = 201
    elif result.error and result.error.code == MISSING_KEY_CODE:
        status_code = 400
    else:
        status_code = 502
    return JSONResponse(status_code=status_code, content=result.model_dump(exclude_none=True))


def register_routes(app: FastAPI):

    @app.get("/")
    async def root(request: Request):
        """Service banner"""
        state = request.app.state
        return {
            "message": "Story Starter Server",
            "status": "healthy",
            "transport": state.generation_service.transport.get_transport_name(),
            "timestamp": datetime.now().isoformat(),
            "version": VERSION,
            "endpoints": [GENERATION_PATH, "api/generate-story", "api/stories", "api/idempotency-key", "health"]
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health and counters"""
        state = request.app.state
        return {
            "status": "healthy",
            "edge": state.edge_gateway.get_status(),
            "generation": state.generation_service.get_stats(),
            "saves": state.save_coordinator.get_status(),
            "timestamp": datetime.now().isoformat()
        }

    @app.get("/config")
    async def get_config(request: Request):
        """Non-secret configuration"""
        settings: Settings = request.app.state.settings
        return {
            "transport": settings.get_current_transport_info(),
            "available_transports": settings.get_available_transports(),
            "upstream_configured": bool(settings.UPSTREAM_MODEL_URL),
            "story_repository": settings.STORY_REPOSITORY,
            "edge_limits": {
                "per_minute": settings.EDGE_RATE_LIMIT_PER_MIN,
                "window_seconds": settings.EDGE_RATE_WINDOW_SECONDS,
                "max_prompt_length": settings.EDGE_MAX_PROMPT_LENGTH
            },
            "warnings": settings.validate_settings()
        }

    @app.api_route(GENERATION_PATH, methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def gemini_proxy(request: Request):
        """Edge proxy; non-POST methods are answered 405 by the gateway"""
        edge_request = EdgeRequest(
            method=request.method,
            headers=dict(request.headers),
            body=await request.body()
        )
        edge_response = await request.app.state.edge_gateway.handle_request(edge_request)
        return Response(content=edge_response.body, status_code=edge_response.status,
                        headers=edge_response.headers)

    @app.post("/api/generate-story")
    async def generate_story(payload: GenerationPayload, request: Request):
        """Generate a story preview"""
        response = await request.app.state.generation_service.generate_story(payload)
        return JSONResponse(content=response.model_dump(mode="json", by_alias=True, exclude_none=True))

    @app.post("/api/idempotency-key")
    async def idempotency_key(body: Any = Body(None)):
        """Key for a preview, stable across key order"""
        return {"idempotencyKey": derive_key(body)}

    @app.post("/api/stories")
    async def save_story(draft: StoryDraft, request: Request,
                         idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
                         authorization: Optional[str] = Header(None)):
        """Save a previewed story once per idempotency key"""
        result = await request.app.state.save_coordinator.save(
            draft, idempotency_key=idempotency_key, access_token=bearer_token(authorization)
        )
        return _save_response(result)

    @app.get("/api/stories")
    async def list_stories(request: Request,
                           story_type: Optional[StoryType] = None,
                           is_private: Optional[bool] = None,
                           page: int = Query(1, ge=1),
                           page_size: int = Query(20, ge=1, le=100),
                           authorization: Optional[str] = Header(None)):
        """List stored stories"""
        filters = {}
        if story_type is not None:
            filters["story_type"] = story_type.value
        if is_private is not None:
            filters["is_private"] = is_private

        start = (page - 1) * page_size
        repository = request.app.state.save_coordinator.repository
        result = await repository.select(filters, start, start + page_size - 1,
                                         access_token=bearer_token(authorization))

        if result.error is not None:
            logger.error(f"story listing failed: {result.error.message}")
            raise HTTPException(status_code=502, detail=result.error.message)

        return {
            "stories": result.data,
            "count": result.count,
            "page": page,
            "page_size": page_size
        }

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={
            "error": exc.detail,
            "status_code": exc.status_code,
            "timestamp": datetime.now().isoformat()
        })

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"unhandled error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={
            "error": "Internal server error.",
            "status_code": 500,
            "timestamp": datetime.now().isoformat()
        })


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
