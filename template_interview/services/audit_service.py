"""
Conversation audit hashing.

The hash covers role + content of every message in order, salted with
AUDIT_HASH_SALT, so a stored conversation can later be checked for tampering
without the audit log ever holding conversation text.
"""

from __future__ import annotations

import hashlib
import json

from template_interview.core.config import get_settings
from template_interview.models.conversation import Message


class AuditService:

    def __init__(self, enabled: bool | None = None, salt: str | None = None) -> None:
        settings = get_settings()
        self.enabled = settings.audit_hash_enabled if enabled is None else enabled
        self._salt = settings.audit_hash_salt if salt is None else salt

    def compute_conversation_hash(self, messages: list[Message]) -> str | None:
        """sha256 hex digest, or None when auditing is switched off."""
        if not self.enabled:
            return None
        canonical = json.dumps(
            [{"role": m.role, "content": m.content} for m in messages],
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return hashlib.sha256((self._salt + canonical).encode("utf-8")).hexdigest()
