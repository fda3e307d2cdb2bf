"""Webhook log model: audit record of one inbound delivery or replay."""
import enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, Index, Integer, String, Text, Uuid

from hookrelay.models.base import Base, JSONType


class WebhookLogStatus(enum.Enum):
    """Outcome of an intake attempt."""

    SUCCESS = "success"
    SIGNATURE_FAILED = "signature_failed"
    FETCH_FAILED = "fetch_failed"
    INVALID = "invalid"


class WebhookLog(Base):
    """
    Append-only record of a webhook delivery.

    Written once when the intake outcome is known. The forwarding_* columns
    are filled later, at most once, by the background forwarding task.
    endpoint_id is deliberately not a foreign key: logs outlive their endpoint.
    """

    __tablename__ = "webhook_logs"
    __table_args__ = (
        Index("ix_webhook_logs_owner_received", "owner_id", "received_at"),
        Index("ix_webhook_logs_endpoint_received", "endpoint_id", "received_at"),
    )

    endpoint_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    received_at = Column(DateTime, nullable=False, index=True)
    processing_time_ms = Column(Integer, nullable=False, default=0)

    # Request
    request_headers = Column(JSONType, nullable=False, default=dict)
    request_body = Column(JSONType, nullable=True)
    body_format = Column(String(10), nullable=True)  # json | form | raw
    raw_body = Column(Text, nullable=True)
    ip_address = Column(String(255), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Classic
    resource_type = Column(String(50), nullable=True, index=True)
    resource_id = Column(String(255), nullable=True)
    fetched_resource = Column(JSONType, nullable=True)
    fetch_error = Column(Text, nullable=True)

    # Next-gen
    event_type = Column(String(100), nullable=True, index=True)
    signature_valid = Column(Boolean, nullable=True)
    signature_header = Column(Text, nullable=True)

    error_message = Column(Text, nullable=True)

    # Forwarding outcome
    forwarded_at = Column(DateTime, nullable=True)
    forwarding_url = Column(String(2048), nullable=True)
    forwarding_status = Column(Integer, nullable=True)
    forwarding_error = Column(Text, nullable=True)
    forwarding_time_ms = Column(Integer, nullable=True)

    # Replay lineage
    is_replay = Column(Boolean, nullable=False, default=False)
    original_log_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    replayed_at = Column(DateTime, nullable=True)
    replayed_by = Column(Uuid(as_uuid=True), nullable=True)

    status = Column(
        SQLEnum(WebhookLogStatus, values_callable=lambda e: [m.value for m in e], name="webhooklogstatus"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<WebhookLog(id={self.id}, endpoint_id={self.endpoint_id}, status={self.status.value})>"
