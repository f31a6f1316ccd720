"""Utility helpers."""

import re
from typing import Any, Mapping, Optional

from cronograma.config import config
from cronograma.schemas import CronogramaQuery

_NUMERIC_RE = re.compile(r"[0-9]+")


def is_numeric_string(value: Any) -> bool:
    """Return True when ``value`` is a non-empty string made only of ASCII digits.

    Args:
        value: Raw value taken from a request body.

    Returns:
        bool: Whether the value can be sent to the portal as-is.
    """
    return isinstance(value, str) and _NUMERIC_RE.fullmatch(value) is not None


def resolve_query(payload: Optional[Mapping[str, Any]]) -> CronogramaQuery:
    """Build the portal query from an inbound body, defaulting invalid fields.

    ``jornada`` is accepted as an alias of ``recurso`` and wins when both are
    valid.

    Args:
        payload: Parsed request body; ``None`` is treated as empty.

    Returns:
        CronogramaQuery: Query whose three fields are numeric strings.
    """
    body = payload or {}
    programa = body.get("programa")
    sede = body.get("sede")
    jornada = body.get("jornada")
    recurso = body.get("recurso")

    if is_numeric_string(jornada):
        resolved_recurso = jornada
    elif is_numeric_string(recurso):
        resolved_recurso = recurso
    else:
        resolved_recurso = config.DEFAULT_RECURSO

    return CronogramaQuery(
        programa=programa if is_numeric_string(programa) else config.DEFAULT_PROGRAMA,
        sede=sede if is_numeric_string(sede) else config.DEFAULT_SEDE,
        recurso=resolved_recurso,
    )


def make_cache_key(query: CronogramaQuery) -> str:
    """Return the order-sensitive cache key for ``query``.

    Args:
        query: Resolved portal query.

    Returns:
        str: ``"{programa}-{sede}-{recurso}"``.
    """
    return f"{query.programa}-{query.sede}-{query.recurso}"
