"""
Payload Normalizer
==================

Roadmap documents reach the API in one of two historically evolved shapes:

- current: ``{"data": {client/coach fields}, "plan": <content>}``
- legacy:  ``{"validation": {"client_id": ...}, "": <content>}``

Both are decoded into one ``NormalizedRoadmap``. The body may also be a
one-element array or wrapped in ``{"roadmap_data": ...}``.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from roadmap_sync.core.exceptions import InvalidFormatError
from roadmap_sync.core.roadmap.parsers import slugify_name
from roadmap_sync.core.schemas import RoadmapContent

logger = structlog.get_logger()

PLACEHOLDER_EMAIL_DOMAIN = "client.temp"
INVALID_FORMAT_MESSAGE = 'Invalid data format. Expected format with data/plan or validation/""'


class PayloadShape(str, enum.Enum):
    CURRENT = "current"
    LEGACY = "legacy"


@dataclass
class ClientIdentity:
    client_name: str
    client_email: str
    client_id: Optional[str] = None
    client_phone: Optional[str] = None


@dataclass
class CoachIdentity:
    coach_id: Optional[str] = None
    coach_name: Optional[str] = None
    coach_email: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.coach_id or self.coach_email)


@dataclass
class RoadmapMetadata:
    start_date: Optional[str] = None
    cycle_number: Optional[int] = None


@dataclass
class NormalizedRoadmap:
    shape: PayloadShape
    client: ClientIdentity
    coach: CoachIdentity
    content: RoadmapContent
    metadata: RoadmapMetadata = field(default_factory=RoadmapMetadata)


# ==========================================================================
# Helpers
# ==========================================================================

def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _email(value: Any) -> Optional[str]:
    text = _text(value)
    return text.lower() if text else None


def _obj(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _first(*candidates: Any, convert: Callable[[Any], Optional[str]] = _text) -> Optional[str]:
    for candidate in candidates:
        value = convert(candidate)
        if value:
            return value
    return None


def _cycle_number(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidFormatError("cycle_number must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidFormatError("cycle_number must be a positive integer") from None
    if number < 1 or (isinstance(value, float) and value != number):
        raise InvalidFormatError("cycle_number must be a positive integer")
    return number


def _decode_content(raw: Any) -> RoadmapContent:
    if not isinstance(raw, dict):
        raise InvalidFormatError("Roadmap content must be an object")
    try:
        return RoadmapContent.model_validate(raw)
    except ValidationError as e:
        raise InvalidFormatError(
            "Invalid roadmap content",
            details=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


# ==========================================================================
# Unwrapping & Detection
# ==========================================================================

def unwrap_body(body: Any) -> tuple[dict, dict]:
    """
    Return ``(outer, payload)``: the top-level object the request carried
    and the roadmap payload inside it.
    """
    if isinstance(body, list):
        if not body or not isinstance(body[0], dict):
            raise InvalidFormatError(INVALID_FORMAT_MESSAGE)
        return {}, body[0]
    if not isinstance(body, dict):
        raise InvalidFormatError(INVALID_FORMAT_MESSAGE)
    if body.get("data") and body.get("plan"):
        return body, body
    if isinstance(body.get("roadmap_data"), dict):
        return body, body["roadmap_data"]
    return body, body


def detect_shape(payload: dict) -> PayloadShape:
    if "data" in payload and "plan" in payload:
        return PayloadShape.CURRENT
    if "validation" in payload and "" in payload:
        return PayloadShape.LEGACY
    raise InvalidFormatError(INVALID_FORMAT_MESSAGE)


# ==========================================================================
# Decoders
# ==========================================================================

def _coach_identity(outer: dict, payload: dict, content: RoadmapContent) -> CoachIdentity:
    data = _obj(payload.get("data"))
    outer_data = _obj(outer.get("data"))
    header = content.header

    coach_email = _first(
        data.get("coach_email"),
        outer.get("coach_email"),
        outer_data.get("coach_email"),
        header.coach_email,
        convert=_email,
    )
    coach_name = _first(
        data.get("coach_name"),
        outer.get("coach_name"),
        outer_data.get("coach_name"),
        header.coach_name,
    )
    coach_id = _first(outer.get("coach_id"), data.get("coach_id"))

    logger.debug(
        "coach_identity_resolution",
        payload_data=_email(data.get("coach_email")),
        body=_email(outer.get("coach_email")),
        body_data=_email(outer_data.get("coach_email")),
        header=_email(header.coach_email),
        resolved=coach_email,
    )
    return CoachIdentity(coach_id=coach_id, coach_name=coach_name, coach_email=coach_email)


def _client_identity(
    client_id: Optional[str],
    client_name: Optional[str],
    client_email: Optional[str],
    client_phone: Optional[str],
    content: RoadmapContent,
) -> ClientIdentity:
    name = client_name or _text(content.header.company_name) or ""
    email = client_email or _email(content.header.email)
    if not email and name:
        email = f"{slugify_name(name)}@{PLACEHOLDER_EMAIL_DOMAIN}"
        logger.info("client_email_synthesized", client_email=email)
    return ClientIdentity(
        client_id=client_id,
        client_name=name,
        client_email=email or "",
        client_phone=client_phone,
    )


def _metadata(outer: dict, payload: dict, content: RoadmapContent) -> RoadmapMetadata:
    data = _obj(payload.get("data"))
    start_date = _first(outer.get("start_date"), data.get("start_date"), content.header.start_date)
    cycle_number = outer.get("cycle_number") or data.get("cycle_number")
    return RoadmapMetadata(start_date=start_date, cycle_number=_cycle_number(cycle_number))


def decode_current(outer: dict, payload: dict) -> NormalizedRoadmap:
    data = payload.get("data")
    if not isinstance(data, dict):
        raise InvalidFormatError(INVALID_FORMAT_MESSAGE)
    content = _decode_content(payload.get("plan"))

    client = _client_identity(
        client_id=_text(data.get("client_id")),
        client_name=_text(data.get("client_name")),
        client_email=_email(data.get("client_email")),
        client_phone=_text(data.get("client_phone")),
        content=content,
    )
    return NormalizedRoadmap(
        shape=PayloadShape.CURRENT,
        client=client,
        coach=_coach_identity(outer, payload, content),
        content=content,
        metadata=_metadata(outer, payload, content),
    )


def decode_legacy(outer: dict, payload: dict) -> NormalizedRoadmap:
    content = _decode_content(payload.get(""))
    validation = _obj(payload.get("validation"))

    client = _client_identity(
        client_id=_text(validation.get("client_id")),
        client_name=None,
        client_email=None,
        client_phone=None,
        content=content,
    )
    return NormalizedRoadmap(
        shape=PayloadShape.LEGACY,
        client=client,
        coach=_coach_identity(outer, payload, content),
        content=content,
        metadata=_metadata(outer, payload, content),
    )


DECODERS = {
    PayloadShape.CURRENT: decode_current,
    PayloadShape.LEGACY: decode_legacy,
}


def normalize_payload(body: Any) -> NormalizedRoadmap:
    """
    Decode a request body into its canonical form.

    Raises:
        InvalidFormatError: the body matches neither known shape, or its
            content breaks the fixed roadmap structure
    """
    outer, payload = unwrap_body(body)
    shape = detect_shape(payload)
    roadmap = DECODERS[shape](outer, payload)

    logger.info(
        "roadmap_payload_normalized",
        shape=shape.value,
        client_email=roadmap.client.client_email or None,
        coach_email=roadmap.coach.coach_email,
        has_plan=roadmap.content.monthly_plan is not None,
    )
    return roadmap
