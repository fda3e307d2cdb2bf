"""Service for storing Mollie API keys encrypted at rest."""
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.adapters.mollie_adapter import MollieAPIError, ResourceFetcherFactory, mollie_adapter_factory
from hookrelay.models.base import utcnow
from hookrelay.models.mollie_api_key import MollieApiKey
from hookrelay.schemas.mollie_api_key import MollieApiKeyCreate
from hookrelay.security.crypto import SecretBox
from hookrelay.services.errors import ApiKeyNotFoundError

logger = structlog.get_logger(__name__)


class ApiKeyService:
    """Service for Mollie API key credentials."""

    def __init__(self, db: AsyncSession):
        """Initialize API key service with database session."""
        self.db = db

    async def create_api_key(self, owner_id: UUID, data: MollieApiKeyCreate, secret_box: SecretBox) -> MollieApiKey:
        """
        Store a Mollie API key.

        Only the ciphertext and the last four characters are persisted.
        A new default key clears the flag on the owner's other keys.

        Args:
            owner_id: Owner of the key
            data: Validated key payload
            secret_box: Encrypts the key

        Returns:
            Created key record
        """
        if data.is_default:
            await self.db.execute(
                update(MollieApiKey)
                .where(MollieApiKey.owner_id == owner_id, MollieApiKey.is_default.is_(True))
                .values(is_default=False)
                .execution_options(synchronize_session=False)
            )

        api_key = MollieApiKey(
            owner_id=owner_id,
            label=data.label,
            encrypted_key=secret_box.encrypt(data.api_key),
            last_four_chars=data.api_key[-4:],
            is_default=data.is_default,
            is_valid=True,
        )

        self.db.add(api_key)
        await self.db.flush()

        logger.info("mollie_api_key_created", api_key_id=str(api_key.id), owner_id=str(owner_id))

        return api_key

    async def find_api_key(self, api_key_id: UUID) -> MollieApiKey | None:
        """Load a key by ID regardless of owner."""
        result = await self.db.execute(select(MollieApiKey).where(MollieApiKey.id == api_key_id))
        return result.scalar_one_or_none()

    async def get_api_key(self, api_key_id: UUID, owner_id: UUID) -> MollieApiKey:
        """
        Load one of the owner's keys.

        Raises:
            ApiKeyNotFoundError: If the key does not exist for this owner
        """
        result = await self.db.execute(
            select(MollieApiKey).where(MollieApiKey.id == api_key_id, MollieApiKey.owner_id == owner_id)
        )
        api_key = result.scalar_one_or_none()

        if api_key is None:
            raise ApiKeyNotFoundError(api_key_id)

        return api_key

    async def validate_api_key(
        self,
        api_key_id: UUID,
        owner_id: UUID,
        secret_box: SecretBox,
        fetcher_factory: ResourceFetcherFactory = mollie_adapter_factory,
    ) -> bool:
        """
        Check a stored key against the Mollie API and record the result.

        Returns:
            True if Mollie accepted the key
        """
        api_key = await self.get_api_key(api_key_id, owner_id)

        try:
            client = fetcher_factory(secret_box.decrypt(api_key.encrypted_key))
        except MollieAPIError as e:
            logger.warning("mollie_api_key_rejected", api_key_id=str(api_key_id), error=str(e))
            is_valid = False
        else:
            is_valid = await client.test_connection()

        api_key.is_valid = is_valid
        api_key.last_validated_at = utcnow()
        await self.db.flush()

        logger.info("mollie_api_key_validated", api_key_id=str(api_key_id), is_valid=is_valid)

        return is_valid
