"""
Turnos Appointment Assistant - FastAPI Application

Receives WhatsApp messages through the Graph API webhook, runs each text
through the command parser and appointment engine, and sends one reply per
message. A direct command endpoint runs the same pipeline synchronously.
"""

import os
import logging
import time
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, Optional, Tuple

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from .calendar_sync import CalendarAdapter, build_calendar_adapter
from .config import TurnosConfig
from .engine import AppointmentEngine
from .formatter import FAILURE_TEXT, format_result
from .messaging import WhatsAppSender
from .models import (
    CommandRequest, CommandResponse, EngineResult, HealthResponse,
    ParsedIntent, WebhookAck,
)
from .parser import parse_command
from .repository import AppointmentRepository, build_repository

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global state
config: Optional[TurnosConfig] = None
repository: Optional[AppointmentRepository] = None
calendar_adapter: Optional[CalendarAdapter] = None
engine: Optional[AppointmentEngine] = None
whatsapp_sender: Optional[WhatsAppSender] = None
app_start_time: float = 0.0


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage service lifecycle (startup/shutdown)
    """
    global config, repository, calendar_adapter, engine, whatsapp_sender, app_start_time

    logger.info(" Starting Turnos appointment assistant...")
    app_start_time = time.time()

    try:
        config = TurnosConfig.from_env()
        logger.info(" Configuration loaded")
    except ValueError as e:
        logger.error(f" Failed to load configuration: {e}")
        raise

    try:
        repository = build_repository(config)
    except ValueError as e:
        logger.error(f" Failed to build appointment store: {e}")
        raise

    if await repository.ping():
        logger.info(f" Appointment store reachable ({config.storage_backend})")
    else:
        logger.warning(f"️ Appointment store unreachable ({config.storage_backend}) - commands will fail until it recovers")

    calendar_adapter = build_calendar_adapter(config)
    engine = AppointmentEngine(config, repository, calendar_adapter)
    whatsapp_sender = WhatsAppSender.from_config(config)

    logger.info(" Turnos appointment assistant ready")

    yield

    # Shutdown
    logger.info(" Shutting down Turnos appointment assistant...")

    if whatsapp_sender:
        await whatsapp_sender.close()
    if repository:
        await repository.close()
        logger.info(" Appointment store closed")

    logger.info(" Service stopped")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Turnos Appointment Assistant",
    description="WhatsApp appointment scheduling with Sheets storage and Google Calendar sync",
    version="1.0.0",
    lifespan=lifespan
)


# ============================================================================
# Pipeline
# ============================================================================

async def process_text(text: Optional[str]) -> Tuple[ParsedIntent, EngineResult, str]:
    """
    Parse, execute and format one message.

    Returns:
        (intent, result, reply text)
    """
    intent = parse_command(text, today=date.today())
    result = await engine.execute(intent)
    return intent, result, format_result(result)


async def handle_incoming_message(sender_id: Optional[str], text: str):
    """Background task: run one inbound message and deliver the reply"""
    if engine is None or whatsapp_sender is None:
        logger.error(" Message received before the service was configured; dropped")
        return

    recipient = whatsapp_sender.resolve_recipient(sender_id)
    try:
        intent, result, reply = await process_text(text)
    except Exception as e:
        logger.error(f" Command from {sender_id} failed: {e}", exc_info=True)
        await whatsapp_sender.send(recipient, FAILURE_TEXT)
        return

    logger.info(f" {intent.command.value} from {sender_id} -> {result.kind.value}")
    await whatsapp_sender.send(recipient, reply)


def extract_message(payload: Any) -> Optional[Dict[str, Any]]:
    """
    Pull the first message out of a Graph API webhook payload.

    Expected shape: entry[0].changes[0].value.messages[0]. Anything else
    (status callbacks, malformed bodies) yields None.
    """
    try:
        value = payload["entry"][0]["changes"][0]["value"]
        message = value["messages"][0]
    except (KeyError, IndexError, TypeError):
        return None
    return message if isinstance(message, dict) else None


# ============================================================================
# Webhook Endpoints
# ============================================================================

@app.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """
    Webhook subscription handshake.

    Echoes hub.challenge when the mode is 'subscribe' and the token matches.
    """
    expected = config.verify_token if config else ""
    if hub_mode == "subscribe" and expected and hub_verify_token == expected:
        logger.info(" Webhook verified")
        return PlainTextResponse(hub_challenge or "")
    logger.warning("️ Webhook verification rejected")
    raise HTTPException(status_code=403, detail="Verification failed")


@app.post("/webhook", response_model=WebhookAck)
async def receive_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Receive inbound messages.

    Always acknowledges with 200; the command runs after the response is
    sent. Non-text messages are processed as empty text.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("️ Webhook body is not JSON; ignored")
        return WebhookAck(status="ignored")

    message = extract_message(payload)
    if message is None:
        return WebhookAck(status="ignored")

    text_part = message.get("text")
    text = text_part.get("body", "") if isinstance(text_part, dict) else ""
    sender_id = message.get("from")
    logger.info(f" Message from {sender_id}: '{text[:60]}'")

    background_tasks.add_task(handle_incoming_message, sender_id, text)
    return WebhookAck(status="received")


# ============================================================================
# API Endpoints
# ============================================================================

@app.post("/api/v1/command", response_model=CommandResponse)
async def run_command(request: CommandRequest):
    """
    Run a command synchronously and return the reply instead of sending it.
    """
    if engine is None:
        raise HTTPException(status_code=503, detail="Service not configured")

    intent, result, reply = await process_text(request.text)
    return CommandResponse(
        reply=reply,
        command=intent.command.value,
        kind=result.kind.value,
        success=result.success,
    )


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Checks configuration and appointment store reachability.
    """
    store_reachable = False
    if repository is not None:
        store_reachable = await repository.ping()

    config_valid = config is not None

    if not config_valid:
        status = "unhealthy"
    elif not store_reachable:
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        store_reachable=store_reachable,
        calendar_enabled=bool(calendar_adapter and calendar_adapter.enabled),
        config_valid=config_valid,
        uptime_seconds=time.time() - app_start_time
    )


# ============================================================================
# Root Endpoint
# ============================================================================

@app.get("/")
async def root():
    """
    Service information endpoint
    """
    return {
        "service": "Turnos Appointment Assistant",
        "version": "1.0.0",
        "status": "operational",
        "endpoints": {
            "verify_webhook": "GET /webhook",
            "receive_webhook": "POST /webhook",
            "command": "POST /api/v1/command",
            "health": "GET /health"
        }
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "3000"))

    uvicorn.run(
        "turnos.app:app",
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
