"""Mollie API key credential model."""
from sqlalchemy import Boolean, Column, DateTime, String, Text, Uuid

from hookrelay.models.base import Base


class MollieApiKey(Base):
    """
    Encrypted Mollie API key used by classic endpoints to fetch resources.

    Only the ciphertext and the last four characters are stored.
    """

    __tablename__ = "mollie_api_keys"

    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    label = Column(String(100), nullable=False)
    encrypted_key = Column(Text, nullable=False)
    last_four_chars = Column(String(4), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    is_valid = Column(Boolean, nullable=False, default=True)
    last_validated_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<MollieApiKey(id={self.id}, label={self.label}, last4={self.last_four_chars})>"
