import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.database import ApiKey
from app.core.exceptions import AuthenticationError, InvalidRequestError
from app.core.security import generate_api_key, get_key_prefix, hash_api_key, mask_api_key
from app.services.disclosure import DisclosureSlot
from app.services.key_store import ApiKeyStore

logger = structlog.get_logger()

MAX_KEY_NAME_LENGTH = 255


def _require_owner(owner_id: str | None) -> str:
    if owner_id is None or not str(owner_id).strip():
        raise AuthenticationError()
    return str(owner_id)


def _clean_key_name(key_name: str | None) -> str:
    name = (key_name or "").strip()
    if not name:
        raise InvalidRequestError("Key name must not be empty.", details={"field": "key_name"})
    if len(name) > MAX_KEY_NAME_LENGTH:
        raise InvalidRequestError(
            f"Key name must be at most {MAX_KEY_NAME_LENGTH} characters.", details={"field": "key_name"}
        )
    return name


def display_value(key_row: ApiKey, slot: DisclosureSlot | None = None) -> str:
    """What a user sees for a key: the plaintext only while it is held and revealed, else the mask."""
    if slot is not None and slot.is_revealed(key_row.id):
        return slot.reveal(key_row.id)
    return mask_api_key(key_row.key_prefix)


class ApiKeyService:
    def __init__(self, session_factory: async_sessionmaker | None = None, store: ApiKeyStore | None = None):
        self._store = store or ApiKeyStore(session_factory=session_factory)

    async def create_key(
        self, owner_id: str | None, key_name: str, slot: DisclosureSlot | None = None
    ) -> tuple[str, ApiKey]:
        """Create a new API key. Returns (raw_key, key_row). The raw key is only available at creation time.

        When a disclosure slot is given it takes over the plaintext, replacing any earlier one,
        but only after the row has been committed.
        """
        owner_id = _require_owner(owner_id)
        name = _clean_key_name(key_name)

        raw_key = generate_api_key()
        key_row = ApiKey(
            user_id=owner_id,
            key_name=name,
            key_hash=hash_api_key(raw_key),
            key_prefix=get_key_prefix(raw_key),
            is_active=True,
        )
        key_row = await self._store.insert(key_row)

        if slot is not None:
            slot.hold(key_row.id, raw_key)

        logger.info("api_key_created", owner_id=owner_id, key_id=key_row.id, key_prefix=key_row.key_prefix)
        return raw_key, key_row

    async def list_keys(self, owner_id: str | None) -> list[ApiKey]:
        """All of the owner's keys, newest first. Rows carry only the digest and prefix."""
        return await self._store.list_for_owner(_require_owner(owner_id))

    async def get_key(self, owner_id: str | None, key_id: str) -> ApiKey:
        return await self._store.get(_require_owner(owner_id), key_id)

    async def set_active(self, owner_id: str | None, key_id: str, active: bool) -> ApiKey:
        owner_id = _require_owner(owner_id)
        key_row = await self._store.update(owner_id, key_id, is_active=bool(active))
        logger.info("api_key_active_changed", owner_id=owner_id, key_id=key_id, is_active=key_row.is_active)
        return key_row

    async def rename_key(self, owner_id: str | None, key_id: str, key_name: str) -> ApiKey:
        owner_id = _require_owner(owner_id)
        key_row = await self._store.update(owner_id, key_id, key_name=_clean_key_name(key_name))
        logger.info("api_key_renamed", owner_id=owner_id, key_id=key_id)
        return key_row

    async def update_key(
        self,
        owner_id: str | None,
        key_id: str,
        key_name: str | None = None,
        is_active: bool | None = None,
    ) -> ApiKey:
        """Apply a rename and/or an active-flag change in a single transaction."""
        owner_id = _require_owner(owner_id)
        values = {}
        if key_name is not None:
            values["key_name"] = _clean_key_name(key_name)
        if is_active is not None:
            values["is_active"] = bool(is_active)
        if not values:
            raise InvalidRequestError("Nothing to update.")

        key_row = await self._store.update(owner_id, key_id, **values)
        logger.info("api_key_updated", owner_id=owner_id, key_id=key_id, fields=sorted(values))
        return key_row

    async def delete_key(self, owner_id: str | None, key_id: str) -> None:
        """Hard delete. A second delete of the same id raises NotFoundError."""
        owner_id = _require_owner(owner_id)
        key_row = await self._store.delete(owner_id, key_id)
        logger.info("api_key_deleted", owner_id=owner_id, key_id=key_id, key_prefix=key_row.key_prefix)
