"""Webhook endpoint model for configured Mollie webhook receivers."""
import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import validates

from hookrelay.models.base import Base, JSONType


class EndpointType(enum.Enum):
    """Webhook protocol an endpoint accepts."""

    CLASSIC = "classic"
    NEXTGEN = "nextgen"


DEFAULT_FORWARDING_TIMEOUT_MS = 30000
MIN_FORWARDING_TIMEOUT_MS = 1000
MAX_FORWARDING_TIMEOUT_MS = 60000


class WebhookEndpoint(Base):
    """
    Webhook receiver owned by a user.

    Classic endpoints reference a Mollie API key used to fetch the notified
    resource. Next-gen endpoints carry an encrypted shared secret used to
    verify the payload signature. Only the fields of the endpoint's own type
    are ever read.
    """

    __tablename__ = "webhook_endpoints"
    __table_args__ = (
        CheckConstraint(
            f"forwarding_timeout_ms BETWEEN {MIN_FORWARDING_TIMEOUT_MS} AND {MAX_FORWARDING_TIMEOUT_MS}",
            name="ck_webhook_endpoints_forwarding_timeout_range",
        ),
    )

    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(
        SQLEnum(EndpointType, values_callable=lambda e: [m.value for m in e], name="endpointtype"),
        nullable=False,
    )
    is_enabled = Column(Boolean, nullable=False, default=True)

    # Classic
    api_key_id = Column(Uuid(as_uuid=True), ForeignKey("mollie_api_keys.id", ondelete="SET NULL"), nullable=True)
    resource_type_filter = Column(JSONType, nullable=True)  # ["payment", "order", ...]

    # Next-gen
    shared_secret = Column(Text, nullable=True)  # encrypted with the SecretBox
    event_type_filter = Column(JSONType, nullable=True)  # ["payment.paid", ...]

    # Forwarding
    forwarding_enabled = Column(Boolean, nullable=False, default=False)
    forwarding_url = Column(String(2048), nullable=True)
    forwarding_headers = Column(JSONType, nullable=True)
    forwarding_timeout_ms = Column(Integer, nullable=False, default=DEFAULT_FORWARDING_TIMEOUT_MS)

    retention_days = Column(Integer, nullable=True)

    # Counters, only touched by successful intake
    total_received = Column(Integer, nullable=False, default=0)
    last_received_at = Column(DateTime, nullable=True)

    @validates("type")
    def _validate_type(self, key: str, value: EndpointType | str) -> EndpointType:
        value = EndpointType(value)
        if self.type is not None and self.type != value:
            raise ValueError("Endpoint type cannot be changed after creation")
        return value

    @property
    def forwards(self) -> bool:
        """True when a background forward should follow a successful intake."""
        return bool(self.forwarding_enabled and self.forwarding_url)

    @property
    def intake_path(self) -> str:
        return f"/webhooks/{self.type.value}/{self.owner_id}/{self.id}"

    def __repr__(self) -> str:
        """String representation."""
        return f"<WebhookEndpoint(id={self.id}, type={self.type.value}, enabled={self.is_enabled})>"
