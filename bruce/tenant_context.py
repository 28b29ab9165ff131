"""Contexto del usuario autenticado para la petición en curso."""

from __future__ import annotations

from contextvars import ContextVar
from typing import Optional, Dict, Any

import structlog


UserContext = Dict[str, Any]

_current_user: ContextVar[Optional[UserContext]] = ContextVar("current_user", default=None)


def set_current_user_context(email: str, role: str) -> None:
    _current_user.set({
        "email": email,
        "role": role,
    })
    structlog.contextvars.bind_contextvars(user=email, role=role)


def get_current_user_context() -> Optional[UserContext]:
    return _current_user.get()


def clear_current_user_context() -> None:
    _current_user.set(None)
