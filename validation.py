"""Shape checks for inbound chat requests, run before any network call."""
from collections.abc import Mapping
from typing import Any

from errors import ValidationError

VALID_ROLES = ("system", "user", "assistant")


def validate_chat_request(body: Any) -> None:
    """Raise ValidationError for the first rule the body violates."""
    messages = body.get("messages") if isinstance(body, Mapping) else None
    if not isinstance(messages, list):
        raise ValidationError("messages field required and must be an array")

    if not messages:
        raise ValidationError("messages array cannot be empty")

    for message in messages:
        if not isinstance(message, Mapping) or not message.get("role"):
            raise ValidationError("each message must include role and content")
        content = message.get("content")
        if not isinstance(content, str) or not content:
            raise ValidationError("each message must include role and content")

        if message["role"] not in VALID_ROLES:
            raise ValidationError("role must be system, user, or assistant")
