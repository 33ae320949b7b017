from typing import List

from fastapi import APIRouter

from peercall.schemas.signaling import PresenceEntry
from peercall.services.presence import presence_registry

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/presence", response_model=List[PresenceEntry], response_model_by_alias=True)
async def get_presence():
    """Identities currently connected to the relay."""
    return presence_registry.snapshot()
