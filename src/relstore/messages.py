"""Inbound batched messages.

A message names a record type and carries either a list of full records
(upserts) or a mapping of identity -> patch, where ``None`` deletes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

Payload = Union[list[Mapping[str, Any]], Mapping[str, Any]]


@dataclass
class Message:
    """A single per-type merge request."""

    type: str
    payload: Payload

    @classmethod
    def coerce(cls, raw: Message | Mapping[str, Any]) -> Message:
        if isinstance(raw, Message):
            return raw
        if not isinstance(raw, Mapping) or "type" not in raw:
            raise ValueError(f"Not a message: {raw!r}")
        return cls(type=str(raw["type"]), payload=raw.get("payload") or {})
