from fastapi import APIRouter, Depends, Request

from app.core.database import ApiKey
from app.dependencies import get_api_key_service, get_disclosure_slot, get_owner_id, get_session_id
from app.schemas.keys import KeyCreate, KeyCreateResponse, KeyResponse, KeyRevealResponse, KeyUpdate
from app.services.api_keys import ApiKeyService, display_value
from app.services.disclosure import DisclosureSlot

router = APIRouter()


def _format_dt(dt) -> str | None:
    if dt is None:
        return None
    return dt.isoformat() if hasattr(dt, "isoformat") else str(dt)


def _to_response(key_row: ApiKey, slot: DisclosureSlot) -> KeyResponse:
    return KeyResponse(
        id=key_row.id,
        key_name=key_row.key_name,
        key_prefix=key_row.key_prefix,
        display_key=display_value(key_row, slot),
        is_revealable=slot.is_current(key_row.id),
        is_active=key_row.is_active,
        created_at=_format_dt(key_row.created_at),
        updated_at=_format_dt(key_row.updated_at),
    )


@router.get("/v1/keys")
async def list_keys(
    owner_id: str = Depends(get_owner_id),
    slot: DisclosureSlot = Depends(get_disclosure_slot),
    service: ApiKeyService = Depends(get_api_key_service),
) -> list[KeyResponse]:
    keys = await service.list_keys(owner_id)
    return [_to_response(k, slot) for k in keys]


@router.post("/v1/keys", status_code=201)
async def create_key(
    body: KeyCreate,
    owner_id: str = Depends(get_owner_id),
    slot: DisclosureSlot = Depends(get_disclosure_slot),
    service: ApiKeyService = Depends(get_api_key_service),
) -> KeyCreateResponse:
    raw_key, key_row = await service.create_key(owner_id, body.key_name, slot=slot)
    return KeyCreateResponse(
        key=raw_key,
        id=key_row.id,
        key_name=key_row.key_name,
        key_prefix=key_row.key_prefix,
        is_active=key_row.is_active,
        created_at=_format_dt(key_row.created_at),
    )


@router.post("/v1/keys/dismiss")
async def dismiss_key(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    session_id: str = Depends(get_session_id),
) -> dict:
    request.app.state.disclosures.dismiss(owner_id, session_id)
    return {"status": "dismissed"}


@router.post("/v1/keys/{key_id}/reveal")
async def reveal_key(
    key_id: str,
    owner_id: str = Depends(get_owner_id),
    slot: DisclosureSlot = Depends(get_disclosure_slot),
    service: ApiKeyService = Depends(get_api_key_service),
) -> KeyRevealResponse:
    # 404 for keys the caller does not own, before looking at the slot
    await service.get_key(owner_id, key_id)
    return KeyRevealResponse(id=key_id, key=slot.reveal(key_id))


@router.patch("/v1/keys/{key_id}")
async def update_key(
    key_id: str,
    body: KeyUpdate,
    owner_id: str = Depends(get_owner_id),
    slot: DisclosureSlot = Depends(get_disclosure_slot),
    service: ApiKeyService = Depends(get_api_key_service),
) -> KeyResponse:
    key_row = await service.update_key(owner_id, key_id, key_name=body.key_name, is_active=body.is_active)
    return _to_response(key_row, slot)


@router.delete("/v1/keys/{key_id}")
async def delete_key(
    key_id: str,
    request: Request,
    owner_id: str = Depends(get_owner_id),
    service: ApiKeyService = Depends(get_api_key_service),
) -> dict:
    await service.delete_key(owner_id, key_id)
    request.app.state.disclosures.discard(owner_id, key_id)
    return {"status": "deleted"}
