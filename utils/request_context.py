from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Optional

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id(incoming: Optional[str] = None) -> str:
    rid = (incoming or "").strip()[:128]
    return rid or str(uuid.uuid4())


def set_request_id(rid: str) -> None:
    _request_id_var.set(rid or "")


def get_request_id() -> str:
    return _request_id_var.get() or ""


def clear_request_id() -> None:
    _request_id_var.set("")
