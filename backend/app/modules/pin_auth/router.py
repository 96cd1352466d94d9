"""
PIN login endpoints.

Flow for a TV app:
    POST /pin/generate            -> show pin + qr_code
    WS   /pin/ws/{session_id}     -> wait for "pin-verified" (or poll /status)
    GET  /pin/status/{session_id} -> receive the access token once

The PIN is confirmed from a device already signed in to Stremio with
POST /pin/verify (auth key) or POST /pin/login-stremio (email/password).
"""
import asyncio
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db, get_session_local
from app.core.logging_config import logger
from app.core.rate_limiter import limiter
from app.models.pin_session import PinStatus
from app.models.user import User
from app.modules.auth.dependencies import get_current_admin
from app.modules.pin_auth.notifier import pin_notifier
from app.modules.pin_auth.service import pin_auth_service
from app.modules.stremio.client import StremioClient, get_stremio_client
from app.schemas.pin import (
    PinCleanupResponse,
    PinGenerateRequest,
    PinGenerateResponse,
    PinLoginStremioRequest,
    PinStatsResponse,
    PinStatusResponse,
    PinVerifyRequest,
    PinVerifyResponse,
)

router = APIRouter()

WS_IDLE_TIMEOUT = 30.0


def _device_info(request: Request, payload: Optional[dict]) -> dict:
    info = dict(payload or {})
    info.setdefault("user_agent", request.headers.get("user-agent"))
    info.setdefault("ip", request.client.host if request.client else None)
    return info


@router.post("/generate", response_model=PinGenerateResponse)
async def generate_pin(
    data: Optional[PinGenerateRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    """Start a PIN login session (no authentication)"""
    issued = await pin_auth_service.issue(db, data.expiry_minutes if data else None)
    return PinGenerateResponse(
        pin=issued.pin,
        session_id=issued.session_id,
        expires_at=issued.expires_at,
        qr_code=issued.qr_code,
    )


@router.post("/verify", response_model=PinVerifyResponse)
@limiter.limit(settings.RATE_LIMIT_PIN_VERIFY)
async def verify_pin(
    request: Request,
    data: PinVerifyRequest,
    db: AsyncSession = Depends(get_db),
    client: StremioClient = Depends(get_stremio_client),
):
    """Confirm a PIN with a Stremio auth key"""
    device = data.device_info.model_dump(mode="json") if data.device_info else None
    verification = await pin_auth_service.verify(
        db,
        data.pin,
        data.stremio_auth_key,
        device_info=_device_info(request, device),
        client=client,
    )
    return PinVerifyResponse(session_id=verification.session_id, user_id=verification.user_id)


@router.post("/login-stremio", response_model=PinVerifyResponse)
@limiter.limit(settings.RATE_LIMIT_PIN_VERIFY)
async def login_stremio_with_pin(
    request: Request,
    data: PinLoginStremioRequest,
    db: AsyncSession = Depends(get_db),
    client: StremioClient = Depends(get_stremio_client),
):
    """Confirm a PIN by logging in to Stremio with email and password"""
    remote = await client.login(data.email, data.password)
    verification = await pin_auth_service.verify(
        db,
        data.pin,
        remote.auth_key,
        device_info=_device_info(request, None),
        identity=remote.user,
    )
    return PinVerifyResponse(session_id=verification.session_id, user_id=verification.user_id)


@router.get("/status/{session_id}", response_model=PinStatusResponse, response_model_exclude_none=True)
async def pin_status(session_id: str, db: AsyncSession = Depends(get_db)):
    """Poll a PIN session; the first poll after verification receives the token"""
    result = await pin_auth_service.check_status(db, session_id)
    return PinStatusResponse(status=result.status, token=result.token, user=result.user)


@router.get("/stats", response_model=PinStatsResponse)
async def pin_stats(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await pin_auth_service.stats(db)


@router.post("/cleanup", response_model=PinCleanupResponse)
async def pin_cleanup(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    deleted = await pin_auth_service.cleanup(db)
    logger.info(f"[PinAuth] Manual cleanup by {admin.username}: {deleted} removed")
    return PinCleanupResponse(deleted=deleted)


@router.websocket("/ws/{session_id}")
async def pin_session_websocket(websocket: WebSocket, session_id: str):
    """
    Push channel for one PIN session.

    Sends {"type": "status", ...} on connect, then {"type": "pin-verified", ...}
    once the PIN is confirmed and closes. Answers {"type": "ping"} with pong.
    """
    await websocket.accept()
    queue = pin_notifier.subscribe(session_id)
    receiver: Optional[asyncio.Task] = None

    try:
        async with get_session_local()() as db:
            current = await pin_auth_service.peek_status(db, session_id)

        if current is None:
            await websocket.send_json({"type": "error", "message": "Invalid session ID"})
            await websocket.close(code=4404, reason="Invalid session ID")
            return

        await websocket.send_json({"type": "status", "sessionId": session_id, "status": current.value})
        if current == PinStatus.VERIFIED:
            await websocket.send_json({"type": "pin-verified", "sessionId": session_id, "status": current.value})
            await websocket.close()
            return
        if current in (PinStatus.USED, PinStatus.EXPIRED):
            await websocket.close()
            return

        receiver = asyncio.create_task(websocket.receive_json())
        while True:
            waiter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait(
                {receiver, waiter},
                timeout=WS_IDLE_TIMEOUT,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if waiter in done:
                await websocket.send_json(waiter.result())
                await websocket.close()
                return
            waiter.cancel()

            if not done:
                # Idle: the session may have expired or been settled elsewhere
                async with get_session_local()() as db:
                    current = await pin_auth_service.peek_status(db, session_id)
                if current == PinStatus.PENDING:
                    continue
                if current == PinStatus.VERIFIED:
                    await websocket.send_json({"type": "pin-verified", "sessionId": session_id, "status": current.value})
                else:
                    status_value = current.value if current is not None else PinStatus.EXPIRED.value
                    await websocket.send_json({"type": "status", "sessionId": session_id, "status": status_value})
                await websocket.close()
                return

            if receiver in done:
                try:
                    message = receiver.result()
                except ValueError:
                    message = None
                    await websocket.send_json({"type": "error", "message": "Messages must be JSON"})
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
                receiver = asyncio.create_task(websocket.receive_json())

    except WebSocketDisconnect:
        logger.debug(f"[PinAuth] WebSocket for {session_id} disconnected")
    finally:
        pin_notifier.unsubscribe(session_id, queue)
        if receiver is not None and not receiver.done():
            receiver.cancel()
