"""MemeTee API: meme generation, t-shirt mockups, contact form and order stub.

Every route is served at the root and mirrored under ``/api`` for the
static front end.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.schemas import (
    ContactRequest,
    ContactResponse,
    ErrorResponse,
    MemeRequest,
    MemeResponse,
    MockupRequest,
    MockupResponse,
    OrderResponse,
)
from src.core.errors import GenerationError, InputValidationError, MemeTeeError, RateLimitedError
from src.core.image_generator import MemeGenerator
from src.core.mockup import MockupCompositor
from src.core.models import GenerationRequest
from src.core.strategy_factory import build_describers, build_strategies
from src.utils.contact import ContactNotifier, ContactSubmission, validate_contact
from src.utils.health import HealthChecker, get_health_checker
from src.utils.orders import process_order
from src.utils.rate_limiter import RateLimiter, get_rate_limiter

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_generator() -> MemeGenerator:
    """Create the meme generator with the configured strategy chain.

    A missing provider is not fatal: requests will be answered with 503
    until a key is configured.

    Raises:
        ValueError: If STRATEGY_ORDER or VISION_MODE is invalid
    """
    try:
        settings.validate_required_keys()
    except ValueError as e:
        logger.warning(f"Configuration warning: {e}")

    gen = MemeGenerator(
        build_strategies(settings),
        describers=build_describers(settings),
        vision_mode=settings.vision_mode,
        enable_vision=settings.enable_vision,
        strategy_timeout=settings.strategy_timeout,
        generation_timeout=settings.generation_timeout,
    )
    logger.info(f"Initialized generator: {gen.get_strategy_names()}")
    return gen


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.generator = create_generator()
    app.state.compositor = MockupCompositor()
    app.state.notifier = ContactNotifier.from_settings(settings)
    logger.info(f"MemeTee API started ({settings.environment})")
    yield
    logger.info("MemeTee API shutting down")


# Dependencies, overridable in tests via app.dependency_overrides

def get_generator(request: Request) -> MemeGenerator:
    generator = getattr(request.app.state, "generator", None)
    if generator is None:
        generator = request.app.state.generator = create_generator()
    return generator


def get_compositor(request: Request) -> MockupCompositor:
    compositor = getattr(request.app.state, "compositor", None)
    if compositor is None:
        compositor = request.app.state.compositor = MockupCompositor()
    return compositor


def get_notifier(request: Request) -> ContactNotifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = request.app.state.notifier = ContactNotifier.from_settings(settings)
    return notifier


def get_meme_limiter() -> RateLimiter:
    return get_rate_limiter("meme")


def get_mockup_limiter() -> RateLimiter:
    return get_rate_limiter("tshirt")


def get_contact_limiter() -> RateLimiter:
    return get_rate_limiter("contact")


def get_health() -> HealthChecker:
    return get_health_checker()


def client_ip(request: Request) -> str:
    """Client address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(limiter: RateLimiter, request: Request) -> None:
    """Raises RateLimitedError when the client is over its budget."""
    if not settings.enable_rate_limiting:
        return
    allowed, retry_after = limiter.is_allowed(client_ip(request))
    if not allowed:
        raise RateLimitedError(retry_after=retry_after)


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    429: {"model": ErrorResponse, "description": "Too many requests"},
}

GENERATION_ERROR_RESPONSES = {
    **ERROR_RESPONSES,
    402: {"model": ErrorResponse, "description": "Provider quota exceeded"},
    403: {"model": ErrorResponse, "description": "Provider account needs verification"},
    408: {"model": ErrorResponse, "description": "Generation timed out"},
    500: {"model": ErrorResponse, "description": "Generation failed"},
    503: {"model": ErrorResponse, "description": "No AI provider configured"},
}

router = APIRouter()


@router.post("/generate-meme", response_model=MemeResponse, responses=GENERATION_ERROR_RESPONSES)
async def generate_meme(
    body: MemeRequest,
    request: Request,
    generator: MemeGenerator = Depends(get_generator),
    limiter: RateLimiter = Depends(get_meme_limiter),
    health: HealthChecker = Depends(get_health)
):
    """Turn an optional photo and prompt into a meme."""
    enforce_rate_limit(limiter, request)

    gen_request = GenerationRequest.from_payload(
        image=body.image,
        prompt=body.prompt,
        style=body.style,
        provider=body.provider,
    )
    logger.info(
        f"Meme request - has image: {gen_request.has_image}, "
        f"style: {gen_request.style}, provider: {gen_request.provider}"
    )

    result = await generator.generate(gen_request)
    health.record_generation(result.provider)
    return MemeResponse.from_result(result)


@router.post(
    "/generate-tshirt-mockup",
    response_model=MockupResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def generate_tshirt_mockup(
    body: MockupRequest,
    request: Request,
    compositor: MockupCompositor = Depends(get_compositor),
    limiter: RateLimiter = Depends(get_mockup_limiter)
):
    """Compose the meme onto a t-shirt template."""
    enforce_rate_limit(limiter, request)

    if not body.meme_url:
        raise InputValidationError("Meme URL is required")

    result = await compositor.compose(body.meme_url, body.tshirt_color)
    return MockupResponse.from_result(result)


@router.post("/contact", response_model=ContactResponse, responses=ERROR_RESPONSES)
async def contact(
    body: ContactRequest,
    request: Request,
    notifier: ContactNotifier = Depends(get_notifier),
    limiter: RateLimiter = Depends(get_contact_limiter)
):
    """Relay a contact form submission by email."""
    enforce_rate_limit(limiter, request)

    error = validate_contact(body.model_dump())
    if error:
        raise InputValidationError(error)

    submission = ContactSubmission(name=body.name, email=body.email, message=body.message)
    outcome = await notifier.submit(submission, client_ip(request))
    return ContactResponse(success=outcome.success, message=outcome.message)


@router.post("/process-order", response_model=OrderResponse)
async def order(body: Optional[Dict[str, Any]] = Body(default=None)):
    """Accept an order in demo mode."""
    return await process_order(body, delay=settings.order_processing_delay)


@router.get("/health")
async def health_status(health: HealthChecker = Depends(get_health)):
    """Service availability flags. Never contacts a provider."""
    return health.service_status(settings)


@router.get("/health/providers")
async def provider_health(generator: MemeGenerator = Depends(get_generator)):
    """Deep check: ping every configured strategy."""
    results = await generator.health_check_all()
    return {
        "status": "OK" if any(results.values()) else "UNAVAILABLE",
        "strategies": results,
    }


@router.get("/metrics")
async def metrics(health: HealthChecker = Depends(get_health)):
    """Request counters and rate limiter statistics."""
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Not found")
    return {
        **health.get_metrics(),
        "rate_limits": {
            name: get_rate_limiter(name).get_stats() for name in ("meme", "contact", "tshirt")
        },
    }


app = FastAPI(
    title="MemeTee API",
    description="Turn photos into memes and preview them on t-shirts.",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def count_requests(request: Request, call_next):
    response = await call_next(request)
    if request.method != "OPTIONS":
        get_health_checker().record_request(success=response.status_code < 500)
    return response


async def preflight():
    """OPTIONS on any endpoint succeeds."""
    return Response(status_code=200)


for path in sorted({route.path for route in router.routes}):
    router.add_api_route(path, preflight, methods=["OPTIONS"], include_in_schema=False)

app.include_router(router)
app.include_router(router, prefix="/api", include_in_schema=False)


@app.exception_handler(MemeTeeError)
async def memetee_error_handler(request: Request, exc: MemeTeeError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc}")
    else:
        logger.warning(f"{exc.code} on {request.url.path}: {exc}")

    body = exc.to_dict(include_details=settings.is_development)
    if settings.is_development and isinstance(exc, GenerationError):
        body["attempts"] = [a.model_dump() for a in exc.attempts]

    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"Invalid request: {field} {errors[0].get('msg', '')}".strip()
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": message, "code": "VALIDATION_ERROR"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    error = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": error},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    body = {"success": False, "error": "Something went wrong. Please try again.", "code": "INTERNAL_ERROR"}
    if settings.is_development:
        body["details"] = str(exc)
    return JSONResponse(status_code=500, content=body)


def main():
    """Launch the API with uvicorn."""
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
