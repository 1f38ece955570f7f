from fastapi import Request

from app.core.exceptions import AuthenticationError
from app.services.api_keys import ApiKeyService
from app.services.disclosure import DisclosureRegistry, DisclosureSlot


def get_owner_id(request: Request) -> str:
    """Owner identity resolved by AuthMiddleware. No identity is a hard failure, never anonymous."""
    owner_id = getattr(request.state, "user_id", None)
    if not owner_id:
        raise AuthenticationError()
    return owner_id


def get_disclosure_slot(request: Request) -> DisclosureSlot:
    """The single plaintext slot for the caller's session context."""
    registry: DisclosureRegistry = request.app.state.disclosures
    owner_id = get_owner_id(request)
    return registry.slot_for(
        owner_id,
        get_session_id(request),
        expires_at=getattr(request.state, "token_expires_at", None),
    )


def get_session_id(request: Request) -> str:
    return getattr(request.state, "session_id", None) or get_owner_id(request)


def get_api_key_service() -> ApiKeyService:
    return ApiKeyService()
