from pydantic import BaseModel


class KeyCreate(BaseModel):
    key_name: str  # Trimmed and length-checked by ApiKeyService


class KeyUpdate(BaseModel):
    key_name: str | None = None
    is_active: bool | None = None


class KeyResponse(BaseModel):
    id: str
    key_name: str
    key_prefix: str
    display_key: str  # Masked prefix, or the plaintext while it is revealed in this session
    is_revealable: bool  # True only for the key whose plaintext this session still holds
    is_active: bool
    created_at: str
    updated_at: str | None = None


class KeyCreateResponse(BaseModel):
    key: str  # Raw key — only available at creation time
    id: str
    key_name: str
    key_prefix: str
    is_active: bool
    created_at: str


class KeyRevealResponse(BaseModel):
    id: str
    key: str
