"""Identifier helpers."""

from __future__ import annotations

import uuid

_POINT_NAMESPACE = uuid.UUID("5b0c8f1e-52a4-4c5e-9d59-3f0e6c1a7b21")


def new_id(prefix: str | None = None) -> str:
    """Random message id, optionally prefixed (``msg_<hex>``)."""
    base = uuid.uuid4().hex
    return f"{prefix}_{base}" if prefix else base


def point_id(message_id: str, index: int) -> str:
    """Deterministic vector point id for fragment ``index`` of a message.

    Re-ingesting the same message yields the same ids, so fragments are
    overwritten instead of duplicated.
    """
    return str(uuid.uuid5(_POINT_NAMESPACE, f"{message_id}:{index}"))


__all__ = ["new_id", "point_id"]
