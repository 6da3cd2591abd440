"""
FastAPI Backend Server

HTTP and websocket surface of the persona voice agent: voice session
control, LiveKit client tokens, audio ingress, text chat and memory reset.
All error responses carry a JSON ``{"error": ...}`` body.
"""

import io
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from persona_voice import __version__
from persona_voice.config import settings
from persona_voice.core.persona import DEFAULT_PERSONA
from persona_voice.core.speech import AUDIO_MIME_TYPE
from persona_voice.logger import get_logger, init_logging
from persona_voice.messages import msg
from persona_voice.realtime import SessionExistsError, VoiceAgent

logger = get_logger(__name__)

WS_CLOSE_UNKNOWN_ROOM = 4404


# Pydantic models for API
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VoiceStartRequest(_CamelModel):
    persona: str = DEFAULT_PERSONA
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class VoiceEndRequest(_CamelModel):
    room_name: Optional[str] = Field(default=None, alias="roomName")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ChatRequest(_CamelModel):
    message: str = ""
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    voice_enabled: bool = Field(default=False, alias="voiceEnabled")


class MemoryClearRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")


# Global agent instance
agent: Optional[VoiceAgent] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup resources."""
    global agent

    init_logging()
    agent = VoiceAgent()
    logger.info(f"Voice agent API started ({settings.app_env})")

    yield

    # Cleanup on shutdown
    if agent is not None:
        await agent.close()
    agent = None


# Rate limiting middleware
class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Simple in-memory rate limiting middleware.
    Limits requests per IP address within a time window.
    """

    def __init__(self, app, requests_limit: int = 60, window_seconds: int = 60):
        super().__init__(app)
        self.requests_limit = requests_limit
        self.window_seconds = window_seconds
        self.request_counts: Dict[str, list] = {}

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/api/health":
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()

        current_time = time.time()
        cutoff_time = current_time - self.window_seconds
        # Forget idle clients so the table only holds IPs seen this window
        self._prune(cutoff_time)
        recent = [ts for ts in self.request_counts.get(client_ip, ()) if ts > cutoff_time]

        if len(recent) >= self.requests_limit:
            return JSONResponse(
                status_code=429,
                content={
                    "error": msg("error.rate_limited"),
                    "retry_after": self.window_seconds,
                },
                headers={"Retry-After": str(self.window_seconds)},
            )

        recent.append(current_time)
        self.request_counts[client_ip] = recent
        return await call_next(request)

    def _prune(self, cutoff_time: float) -> None:
        """Drop clients whose newest request is older than the window."""
        idle = [ip for ip, stamps in self.request_counts.items() if not stamps or stamps[-1] <= cutoff_time]
        for ip in idle:
            del self.request_counts[ip]


app = FastAPI(
    title="Persona Voice Agent API",
    description="Voice sessions and text chat with the Adina and Rafa personas",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    RateLimitMiddleware,
    requests_limit=settings.server.rate_limit_requests,
    window_seconds=settings.server.rate_limit_window,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as ``{"error": ...}``."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def get_agent() -> VoiceAgent:
    """Get the agent instance."""
    if agent is None:
        raise HTTPException(status_code=503, detail=msg("error.agent_not_ready"))
    return agent


@app.get("/")
async def root():
    return {"message": msg("server.online"), "status": "online", "version": __version__}


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    active = len(agent.sessions.active_sessions) if agent is not None else 0
    return {"status": "healthy", "activeSessions": active}


# ============================================================================
# Voice sessions
# ============================================================================

@app.post("/api/voice/start")
async def start_voice_session(request: Optional[VoiceStartRequest] = None):
    """Start a persona bot in a fresh room."""
    voice_agent = get_agent()
    persona_id = request.persona if request else DEFAULT_PERSONA
    session_id = request.session_id if request else None

    if persona_id not in voice_agent.personas:
        raise HTTPException(status_code=404, detail=msg("error.unknown_persona"))

    try:
        session, _ = await voice_agent.start_voice_session(persona_id, session_id=session_id)
    except SessionExistsError:
        raise HTTPException(status_code=409, detail=msg("error.session_exists"))
    except ValueError as e:
        # Missing LiveKit or Speech configuration
        logger.error(f"Voice start rejected: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Voice start error: {e}")
        raise HTTPException(status_code=500, detail=msg("error.voice_start_failed"))

    return {"roomName": session.room_name, "persona": session.persona, "success": True}


@app.post("/api/voice/end")
async def end_voice_session(request: VoiceEndRequest):
    """Stop the bot of a room and end its session."""
    voice_agent = get_agent()
    if not request.room_name:
        raise HTTPException(status_code=400, detail=msg("error.room_name_required"))

    if not await voice_agent.end_voice_session(request.room_name, session_id=request.session_id):
        raise HTTPException(status_code=404, detail=msg("error.room_not_found"))

    return {"success": True, "message": msg("voice.session_ended")}


@app.get("/api/voice/token")
async def get_token(
    room_name: Optional[str] = Query(default=None, alias="roomName"),
    participant_name: Optional[str] = Query(default=None, alias="participantName"),
):
    """LiveKit access token for a human joining a voice session."""
    voice_agent = get_agent()
    if not room_name or not participant_name:
        raise HTTPException(status_code=400, detail=msg("error.token_params_required"))
    if not settings.livekit.is_configured:
        raise HTTPException(status_code=503, detail=msg("error.livekit_not_configured"))
    if voice_agent.sessions.get_session_for_room(room_name) is None:
        raise HTTPException(status_code=404, detail=msg("error.room_not_found"))

    try:
        token = voice_agent.participant_token(room_name, participant_name)
    except Exception as e:
        logger.error(f"Token error: {e}")
        raise HTTPException(status_code=500, detail=msg("error.token_failed"))

    return {
        "token": token,
        "roomName": room_name,
        "participantName": participant_name,
        "url": settings.livekit.ws_url,
    }


@app.get("/api/voice/test-connection")
async def test_connection():
    """Check the LiveKit configuration by minting a throwaway token."""
    voice_agent = get_agent()
    config = voice_agent.connection_info()

    if not settings.livekit.is_configured:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": msg("error.livekit_not_configured"),
                "config": config,
            },
        )

    try:
        voice_agent.participant_token("connection-test", "connection-test-user")
    except Exception as e:
        logger.error(f"Connection test error: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": msg("error.token_failed"), "config": config},
        )

    return {"success": True, "message": msg("livekit.config_valid"), "config": config}


@app.websocket("/api/voice/audio/{room_name}")
async def voice_audio(websocket: WebSocket, room_name: str):
    """Binary PCM frames from a client, fed to the room's bot."""
    await websocket.accept()

    voice_agent = agent
    bot = voice_agent.sessions.get_bot(room_name) if voice_agent is not None else None
    if bot is None:
        await websocket.close(code=WS_CLOSE_UNKNOWN_ROOM)
        return

    logger.info(f"Audio stream opened for {room_name}")
    accepted = dropped = 0
    try:
        while True:
            chunk = await websocket.receive_bytes()
            if voice_agent.sessions.get_bot(room_name) is not bot:
                await websocket.close(code=WS_CLOSE_UNKNOWN_ROOM)
                break
            if await bot.handle_audio(chunk):
                accepted += 1
            else:
                dropped += 1
    except WebSocketDisconnect:
        pass
    finally:
        logger.info(f"Audio stream closed for {room_name} ({accepted} accepted, {dropped} dropped)")


# ============================================================================
# Text chat
# ============================================================================

@app.post("/api/chat/{persona}")
async def chat(persona: str, request: ChatRequest):
    """Text chat with a persona, optionally answered as MP3 audio."""
    voice_agent = get_agent()

    if persona not in voice_agent.personas:
        raise HTTPException(status_code=404, detail=msg("error.unknown_persona"))
    if not request.message or not request.message.strip():
        raise HTTPException(status_code=400, detail=msg("error.message_required"))
    if request.voice_enabled and not settings.speech.is_configured:
        raise HTTPException(status_code=503, detail=msg("error.speech_not_configured"))

    try:
        reply = await voice_agent.chat(persona, request.message, session_id=request.session_id)
    except Exception as e:
        logger.error(f"Chat error: {e}")
        raise HTTPException(status_code=500, detail=msg("error.chat_failed"))

    if not request.voice_enabled:
        return {"response": reply, "persona": voice_agent.get_persona(persona).id}

    try:
        audio = await voice_agent.synthesize(reply, persona)
    except Exception as e:
        logger.error(f"TTS error: {e}")
        raise HTTPException(status_code=500, detail=msg("error.tts_failed"))

    return StreamingResponse(
        io.BytesIO(audio),
        media_type=AUDIO_MIME_TYPE,
        headers={
            "Content-Disposition": "inline",
            "Content-Length": str(len(audio)),
        },
    )


@app.post("/api/memory/clear")
async def clear_memory(request: MemoryClearRequest):
    """Forget a session's conversation with every persona."""
    voice_agent = get_agent()
    if not request.session_id:
        raise HTTPException(status_code=400, detail=msg("error.session_id_required"))

    cleared = voice_agent.clear_memory(request.session_id)
    return {"success": True, "message": msg("memory.cleared"), "memoriesCleared": cleared}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api_server:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.is_development,
    )
