"""
Push webhook payloads and their signature check.
"""

import hashlib
import hmac
import json
from typing import List, Optional, Union
from urllib.parse import parse_qs

from pydantic import BaseModel, Field


class Commit(BaseModel):
    """One commit of a push, with the paths it touched."""
    id: str
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    ref: Optional[str] = None
    commits: List[Commit] = Field(default_factory=list)


def verify_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> bool:
    """
    Check an `X-Hub-Signature` header (`sha1=<hex digest>`) against the raw body.
    """
    if not secret or not signature:
        return False
    digest = 'sha1=' + hmac.new(secret.encode('utf-8'), body, hashlib.sha1).hexdigest()
    return hmac.compare_digest(digest, signature)


def parse_payload(body: Union[bytes, str], content_type: Optional[str] = None) -> WebhookPayload:
    """
    Decode a push delivery.

    GitHub sends either a JSON body or a form-encoded body whose `payload`
    field holds the JSON document.

    Raises:
        ValueError: If the body holds no decodable payload
    """
    if isinstance(body, bytes):
        body = body.decode('utf-8')

    if content_type and content_type.startswith('application/x-www-form-urlencoded'):
        fields = parse_qs(body)
        if 'payload' not in fields:
            raise ValueError("Form-encoded delivery without a payload field")
        body = fields['payload'][0]

    return WebhookPayload.model_validate(json.loads(body))
