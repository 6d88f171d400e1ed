"""
Parse queue messages announcing uploaded catalog files.

Two body shapes are accepted:

    {"bucket": "catalog-files", "key": "12/7/products.csv"}

and the S3 event notification emitted when the upload bucket publishes
directly to the queue:

    {"Records": [{"s3": {"bucket": {"name": ...}, "object": {"key": ...}}}]}

S3 event keys are URL-encoded with ``+`` for spaces.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote_plus

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import InvalidObjectKeyError, MessageFormatError
from schemas.catalog import ObjectNotification

logger = logging.getLogger(__name__)

KEY_FORMAT = "tenant_id/list_id/filename.csv"
# tenant_id and list_id are PostgreSQL INTEGER columns
MAX_ID = 2**31 - 1


def parse_message_body(body: Any, message_id: Optional[str] = None) -> ObjectNotification:
    """
    Turn a raw message body into an ObjectNotification.

    Raises:
        MessageFormatError: Body is not JSON or carries no bucket/key
    """
    preview = str(body)[:200]
    context = {"message_id": message_id, "body_preview": preview}

    if isinstance(body, (str, bytes)):
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise MessageFormatError(
                "Message body is not valid JSON",
                context=context,
                original_exception=e
            )
    else:
        payload = body

    if not isinstance(payload, dict):
        raise MessageFormatError("Message body must be a JSON object", context=context)

    if "Records" in payload:
        bucket, key = _from_s3_event(payload, context)
    else:
        bucket, key = payload.get("bucket"), payload.get("key")

    try:
        return ObjectNotification(bucket=bucket, key=key, message_id=message_id)
    except PydanticValidationError as e:
        raise MessageFormatError(
            "Message body must contain non-empty 'bucket' and 'key'",
            context=context,
            original_exception=e
        )


def _from_s3_event(payload: Dict[str, Any], context: Dict[str, Any]) -> Tuple[Any, Any]:
    records = payload.get("Records") or []
    try:
        s3_record = records[0]["s3"]
        bucket = s3_record["bucket"]["name"]
        key = unquote_plus(s3_record["object"]["key"])
    except (IndexError, KeyError, TypeError) as e:
        raise MessageFormatError(
            "Message does not contain a valid S3 event record",
            context=context,
            original_exception=e
        )
    return bucket, key


def parse_object_key(key: str) -> Tuple[int, int]:
    """
    Extract (tenant_id, list_id) from the first two key segments.

    Raises:
        InvalidObjectKeyError: Fewer than two segments, or a segment that is
            not a non-negative integer. The error carries whichever ids did
            parse (0 otherwise).
    """
    parts = key.split("/")
    if len(parts) < 2:
        raise InvalidObjectKeyError(
            f"Invalid object key format. Expected format: {KEY_FORMAT}",
            context={"key": key}
        )

    tenant_id = _parse_id(parts[0])
    list_id = _parse_id(parts[1])

    if tenant_id is None or list_id is None:
        raise InvalidObjectKeyError(
            "Invalid tenant_id or list_id in object key. Both should be numeric.",
            context={"key": key},
            tenant_id=tenant_id or 0,
            list_id=list_id or 0
        )

    return tenant_id, list_id


def _parse_id(segment: str) -> Optional[int]:
    segment = segment.strip()
    if not segment.isascii() or not segment.isdigit():
        return None
    value = int(segment)
    if value > MAX_ID:
        return None
    return value
