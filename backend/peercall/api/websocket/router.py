"""
WebSocket Router - Call Signaling Relay Endpoint

This is the thin routing layer that delegates to RelaySession
for all relay connection handling.
"""
from typing import Optional

from fastapi import APIRouter, WebSocket, Query

from peercall.config.constants import RELAY_WS_PATH
from peercall.services.relay import RelaySession

router = APIRouter()


@router.websocket(RELAY_WS_PATH)
async def call_signaling_endpoint(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None, alias="userId"),
    username: Optional[str] = Query(None),
    full_name: Optional[str] = Query(None, alias="fullName"),
):
    """
    WebSocket endpoint for call signaling.

    Query Parameters:
        userId: Identity of the connecting user (required)
        username: Display name (defaults to userId)
        fullName: Full name shown in presence lists

    Message Types (JSON):
        - get-online-users: Request a presence snapshot
        - call-offer / call-answer / ice-candidate / call-end / call-error:
          Forwarded to targetUserId, stamped with fromUserId
    """
    session = RelaySession(
        websocket=websocket,
        user_id=user_id,
        username=username,
        full_name=full_name,
    )
    await session.run()
