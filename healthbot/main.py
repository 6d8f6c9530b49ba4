"""
FastAPI main application for the Health ERP chatbot.

This module exposes the menu-driven chat endpoint plus a few REST views over
the healthcare API (appointments, patient profile) and helpers for binding a
test patient and inspecting session state.
"""

import time
from datetime import datetime
from contextlib import asynccontextmanager

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api_client import HealthcareAPIClient
from .chatbot import HealthChatbot
from .errors import SessionExpired, UpstreamUnavailable
from .identity import SessionBridge
from .models import (
    AuthStatusResponse, BookAppointmentRequest, ChatRequest, ChatResponse, LoginRequest
)
from .observability import setup_logging, log_request, get_observability_summary, mask_secret
from .security import RateLimiter
from .session_manager import SessionStore
from .settings import settings

# Setup structured logging
logger = setup_logging()

# Global service objects (in-memory, single process)
session_store = SessionStore()
api_client = HealthcareAPIClient()
chatbot = HealthChatbot(api_client, session_store)
rate_limiter = RateLimiter()

STARTED_AT = time.time()


def get_chatbot() -> HealthChatbot:
    return chatbot


def get_session_store() -> SessionStore:
    return session_store


def get_api_client() -> HealthcareAPIClient:
    return api_client


def get_rate_limiter() -> RateLimiter:
    return rate_limiter


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(
        "Starting Health ERP Chatbot",
        version=__version__,
        environment=settings.ENVIRONMENT,
        health_api_url=settings.HEALTH_API_URL,
        api_key=mask_secret(settings.HEALTH_API_KEY),
        guest_drafts=settings.ALLOW_GUEST_DRAFTS,
    )

    yield

    # Shutdown
    removed = session_store.cleanup_expired()
    logger.info("Shutting down Health ERP Chatbot", expired_sessions_removed=removed)


# FastAPI application
app = FastAPI(
    title="Health ERP Chatbot",
    description="Menu-driven healthcare chatbot over the Health ERP API",
    version=__version__,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", path=request.url.path, error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": "Please try again or contact support if the problem persists.",
        },
    )


# Utility functions
def bound_bridge(store: SessionStore, user_id: str) -> SessionBridge:
    """Bridge of a user with a valid identity, or 401."""
    session = store.get(user_id)
    if session is None or session.binding is None:
        raise HTTPException(status_code=401, detail="Patient authentication required")

    bridge = SessionBridge(session)
    if not bridge.is_valid():
        bridge.clear()
        store.update(user_id, session)
        raise HTTPException(status_code=401, detail="Session expired. Please login again.")
    return bridge


@app.get("/chat")
async def chat_index():
    """Endpoint index."""
    return {
        "message": "Health ERP Chatbot API",
        "version": __version__,
        "endpoints": {
            "POST /chat": "Send chat message",
            "GET /appointments/{user_id}": "Get user appointments",
            "POST /appointments": "Create appointment",
            "GET /patient/{user_id}": "Get patient info",
            "POST /test-login": "Bind a patient through the healthcare API sign-in",
            "GET /auth-status/{user_id}": "Identity bound to a user",
            "GET /sessions/stats": "Session store statistics",
            "GET /health": "Health check",
            "GET /api/status": "Service metrics",
        },
    }


@app.get("/health")
async def health_check(store: SessionStore = Depends(get_session_store)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "Health ERP Chatbot API",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat(),
        "uptime_seconds": round(time.time() - STARTED_AT, 1),
        "environment": settings.ENVIRONMENT,
        "sessions": store.count(),
    }


@app.get("/api/status")
async def api_status(store: SessionStore = Depends(get_session_store)):
    """API status endpoint with metrics."""
    summary = get_observability_summary()
    summary["sessions"] = store.stats()
    summary["healthcare_api"] = {
        "base_url": settings.HEALTH_API_URL,
        "api_key": mask_secret(settings.HEALTH_API_KEY),
        "service_token_configured": settings.service_token is not None,
    }
    return summary


@app.get("/sessions/stats")
async def sessions_stats(store: SessionStore = Depends(get_session_store)):
    return store.stats()


@app.post("/chat", response_model=ChatResponse)
def chat_endpoint(
    request: ChatRequest,
    bot: HealthChatbot = Depends(get_chatbot),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    Main chat endpoint.

    ``selected_option`` is either an option action or, while the bot is
    waiting for free text, the user's typed message.
    """
    if not request.user_id:
        return JSONResponse(status_code=400, content={"success": False, "error": "User ID is required"})

    allowed, reason = limiter.is_allowed(request.user_id)
    if not allowed:
        return JSONResponse(status_code=429, content={"success": False, "error": "Too many requests", "message": reason})

    start_time = datetime.utcnow()
    action = request.selected_option or "main"

    try:
        reply = bot.get_response(request.user_id, action, request.additional_data, request.session_data)
    except Exception as e:
        latency_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
        logger.error("Error processing chat request", user_id=request.user_id, error=str(e), exc_info=True)
        log_request(request.user_id, action, str(e), latency_ms, success=False)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "message": "Please try again or contact support if the problem persists.",
            },
        )

    latency_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
    has_identity = bot.has_bound_identity(request.user_id)
    log_request(
        request.user_id,
        action,
        reply.message,
        latency_ms,
        success=True,
        has_external_session=has_identity,
    )

    return ChatResponse(
        success=True,
        response=reply,
        timestamp=datetime.utcnow().isoformat() + "Z",
        user_id=request.user_id,
        session_id=request.session_id,
        has_external_session=has_identity,
    )


@app.get("/appointments/{user_id}")
def list_appointments(
    user_id: str,
    store: SessionStore = Depends(get_session_store),
    api: HealthcareAPIClient = Depends(get_api_client),
):
    """Appointments of the patient bound to ``user_id``."""
    bridge = bound_bridge(store, user_id)

    try:
        result = api.get_patient_appointments(bridge, bridge.binding.patient.id)
    except SessionExpired:
        store.update(user_id, bridge.session)
        raise HTTPException(status_code=401, detail="Session expired. Please login again.")

    return {
        "success": True,
        "appointments": result.items,
        "count": len(result.items),
        "degraded": result.failed,
    }


@app.post("/appointments")
def create_appointment(
    request: BookAppointmentRequest,
    store: SessionStore = Depends(get_session_store),
    api: HealthcareAPIClient = Depends(get_api_client),
):
    """Book an appointment directly for the patient bound to ``user_id``."""
    bridge = bound_bridge(store, request.user_id)
    payload = {
        "doctor_id": request.doctor_id,
        "hospital_id": request.hospital_id,
        "date_time": request.date_time,
        "symptoms": request.symptoms or "General consultation",
    }

    try:
        result = api.book_appointment(bridge, bridge.binding.patient.id, payload)
    except SessionExpired:
        store.update(request.user_id, bridge.session)
        raise HTTPException(status_code=401, detail="Session expired. Please login again.")
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))

    if not result.success:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": result.error or "Failed to book appointment"},
        )

    return {
        "success": True,
        "appointment_id": result.appointment_id,
        "message": "Appointment booked successfully",
    }


@app.get("/patient/{user_id}")
def get_patient(
    user_id: str,
    store: SessionStore = Depends(get_session_store),
    api: HealthcareAPIClient = Depends(get_api_client),
):
    """Profile of the patient bound to ``user_id``."""
    bridge = bound_bridge(store, user_id)

    try:
        dashboard = api.get_patient_dashboard(bridge, bridge.binding.patient.id)
    except SessionExpired:
        store.update(user_id, bridge.session)
        raise HTTPException(status_code=401, detail="Session expired. Please login again.")
    except UpstreamUnavailable as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail="Patient not found")
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "success": True,
        "patient": dashboard["profile_extra"] or dashboard["profile"].model_dump(),
        "summary": dashboard["summary"],
    }


@app.post("/test-login")
def test_login(
    request: LoginRequest,
    store: SessionStore = Depends(get_session_store),
    api: HealthcareAPIClient = Depends(get_api_client),
):
    """Sign a patient in against the healthcare API and bind them to ``user_id``."""
    email = request.email or settings.TEST_PATIENT_EMAIL
    password = request.password or settings.TEST_PATIENT_PASSWORD
    if not email or not password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    result = api.authenticate("patient", email, password)
    if not result.success or result.patient is None:
        return JSONResponse(
            status_code=401,
            content={"success": False, "error": "Authentication failed", "message": result.error},
        )

    session = store.get_or_create(request.user_id)
    SessionBridge(session).bind_profile(result.patient, result.cookies)
    store.update(request.user_id, session)

    logger.info("Test login bound", user_id=request.user_id, patient_id=result.patient.id)

    return {
        "success": True,
        "message": "Test login successful! You can now use patient features.",
        "patient": result.patient.model_dump(),
        "instructions": 'Try features like "View Appointments" or "Medical Records".',
    }


@app.get("/auth-status/{user_id}", response_model=AuthStatusResponse)
async def auth_status(user_id: str, store: SessionStore = Depends(get_session_store)):
    """Identity currently bound to ``user_id``."""
    session = store.get(user_id)
    if session is None:
        return AuthStatusResponse(user_id=user_id, is_authenticated=False, has_external_session=False)

    bridge = SessionBridge(session)
    binding = bridge.binding
    return AuthStatusResponse(
        user_id=user_id,
        is_authenticated=bridge.is_valid(),
        has_external_session=session.has_external_session,
        session_type=bridge.session_type(),
        patient=bridge.current_patient(),
        bound_at=binding.bound_at if binding else None,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("healthbot.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
