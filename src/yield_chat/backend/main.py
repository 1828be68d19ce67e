import logging
from typing import Optional, Union

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from . import config
from .demo import DemoOrchestrator
from .errors import InvalidRequest
from .live import LiveOrchestrator
from .models import ChatRequest
from .observability.timing import get_recent_records
from .streaming import MEDIA_TYPE, UI_MESSAGE_STREAM_HEADERS

# Configure logging level based on debug flag
log_level = logging.DEBUG if config.DEBUG_ENABLED else logging.INFO
logging.basicConfig(
    level=log_level,
    format="%(levelname)s: %(asctime)s | %(name)s | %(message)s",
    force=True  # Force reconfiguration even if uvicorn already configured logging
)

# Silence noisy third-party libraries - keep them quiet even in debug mode
for noisy_logger in ["openai", "httpx", "httpcore"]:
    logging.getLogger(noisy_logger).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def _dbg(msg: str):
    logger.debug(msg)


app = FastAPI()

if config.DEBUG_ENABLED:
    logger.warning("DEBUG MODE ENABLED - Verbose logging active (YIELD_CHAT_DEBUG=1)")

Orchestrator = Union[DemoOrchestrator, LiveOrchestrator]


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    return JSONResponse(status_code=400, content={"error": "InvalidRequest", "message": str(exc)})


def parse_chat_request(body) -> ChatRequest:
    """Validate an inbound payload before any mode logic runs."""
    if not isinstance(body, dict):
        raise InvalidRequest("Invalid request: JSON object body required")
    if not isinstance(body.get("messages"), list):
        raise InvalidRequest("Invalid request: messages array required")
    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidRequest(f"Invalid request: {e.errors(include_url=False, include_context=False)}")


def select_orchestrator(req: ChatRequest) -> Orchestrator:
    """Pick the response path once per request from the configured credential."""
    balances = req.balances_list
    positions = req.positions_list
    if config.has_live_credentials():
        return LiveOrchestrator(req.messages, req.walletAddress, balances, positions)
    return DemoOrchestrator(req.walletAddress, balances, positions)


@app.post("/api/chat")
@app.post("/chat")
async def chat(request: Request):
    """Answer one chat turn as a UI message stream (Server-Sent Events)."""
    try:
        body = await request.json()
    except ValueError:
        raise InvalidRequest("Invalid request: body must be JSON")
    req = parse_chat_request(body)

    try:
        orchestrator = select_orchestrator(req)
        _dbg(f"Chat request: mode={orchestrator.mode} messages={len(req.messages)} wallet={bool(req.walletAddress)}")
        return StreamingResponse(
            orchestrator.stream(),
            media_type=MEDIA_TYPE,
            headers=UI_MESSAGE_STREAM_HEADERS,
        )
    except Exception as e:
        logger.exception("API Error")
        return JSONResponse(
            status_code=500,
            content={"error": "InternalError", "message": str(e) or "Unknown error occurred"},
        )


@app.get("/health")
def health():
    live = config.has_live_credentials()
    return {"ok": True, "mode": "live" if live else "demo", "model": config.MODEL if live else None}


@app.get("/debug/timing")
def debug_timing(n: Optional[int] = None):
    """Recent live-request timing records (newest last)."""
    return {"records": get_recent_records(n)}
