"""Cronograma lookup endpoint."""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from cronograma.dependencies import get_cronograma_fetcher, get_result_cache
from cronograma.schemas import CronogramaResponse, ErrorResponse
from cronograma.services.cache import ResultCache
from cronograma.services.fetcher import CronogramaFetcher
from cronograma.utils.helpers import make_cache_key, resolve_query

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cronograma", tags=["Cronograma"])

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _read_body(request: Request) -> Dict[str, Any]:
    """Parse a JSON or form body; anything unreadable counts as empty."""
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        logger.debug("Ignoring non-JSON request body")
        return {}
    return body if isinstance(body, dict) else {}


@router.post(
    "",
    response_model=CronogramaResponse,
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse}},
)
async def get_cronograma(
    request: Request,
    cache: ResultCache = Depends(get_result_cache),
    fetcher: CronogramaFetcher = Depends(get_cronograma_fetcher),
):
    """Return the schedule for the requested filters, from cache when fresh.

    Args:
        request: Incoming request; its body may carry ``programa``, ``sede``,
            ``jornada`` or ``recurso``. Missing or non-numeric values fall
            back to the configured defaults.
        cache: Shared result cache.
        fetcher: Retrying portal client.

    Returns:
        CronogramaResponse | JSONResponse: The data envelope, or a 500 failure
        envelope when every fetch attempt failed.
    """
    query = resolve_query(await _read_body(request))
    key = make_cache_key(query)

    cached = cache.get(key)
    if cached is not None:
        logger.info("Cronograma cache hit", extra={"cache_key": key})
        return CronogramaResponse(cached=True, params=query, data=cached)

    try:
        data = await fetcher.fetch(query)
    except Exception as exc:
        logger.exception("POST /cronograma failed", extra={"cache_key": key})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(message=str(exc)).model_dump(),
        )

    cache.put(key, data)
    return CronogramaResponse(cached=False, params=query, data=data)
