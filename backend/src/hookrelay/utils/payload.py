"""Parsed webhook bodies and header helpers.

A delivery body is one of three shapes, depending on its Content-Type:
JSON (any JSON value), a URL-encoded form flattened to a str->str map, or the
raw text when neither applies. Each shape records which one it is so the
stored log can be re-serialized faithfully for replays.
"""
import json
from dataclasses import dataclass
from typing import Any, Mapping, Union
from urllib.parse import parse_qsl, urlencode

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass(frozen=True)
class JsonBody:
    value: Any

    format = "json"

    def to_storage(self) -> Any:
        return self.value

    def get_id(self) -> Any:
        if isinstance(self.value, dict):
            return self.value.get("id")
        if isinstance(self.value, list):
            return None
        return self.value


@dataclass(frozen=True)
class FormBody:
    fields: dict[str, str]

    format = "form"

    def to_storage(self) -> dict[str, str]:
        return dict(self.fields)

    def get_id(self) -> Any:
        return self.fields.get("id")


@dataclass(frozen=True)
class RawBody:
    text: str

    format = "raw"

    def to_storage(self) -> str:
        return self.text

    def get_id(self) -> Any:
        return self.text


ParsedBody = Union[JsonBody, FormBody, RawBody]


class InvalidJSONBody(ValueError):
    """Raised when a body declared as JSON does not parse."""


def parse_json(raw_body: str) -> JsonBody:
    """
    Parse a JSON body.

    Raises:
        InvalidJSONBody: If the body is not valid JSON
    """
    try:
        return JsonBody(json.loads(raw_body))
    except (json.JSONDecodeError, ValueError) as e:
        raise InvalidJSONBody(str(e)) from e


def parse_body(raw_body: str, content_type: str | None) -> ParsedBody:
    """
    Parse a body according to its Content-Type.

    Args:
        raw_body: Body text exactly as received
        content_type: Content-Type header value, if any

    Returns:
        JsonBody, FormBody or RawBody

    Raises:
        InvalidJSONBody: If the content type is JSON but the body does not parse
    """
    media_type = (content_type or "").lower()

    if JSON_CONTENT_TYPE in media_type:
        return parse_json(raw_body)

    if FORM_CONTENT_TYPE in media_type:
        # Repeated keys collapse to the last value
        return FormBody(dict(parse_qsl(raw_body, keep_blank_values=True)))

    return RawBody(raw_body)


def serialize_stored_body(stored: Any, body_format: str | None) -> str:
    """
    Rebuild a request body from its stored parsed form.

    Only used when the raw body was not kept; the result may differ
    byte-wise from what the provider originally sent.
    """
    if body_format == "raw" and isinstance(stored, str):
        return stored
    if body_format == "form" and isinstance(stored, dict):
        return urlencode({str(k): str(v) for k, v in stored.items()})
    return json.dumps(stored)


def get_header(headers: Mapping[str, str] | None, name: str) -> str | None:
    """Case-insensitive header lookup on a plain dict."""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None
