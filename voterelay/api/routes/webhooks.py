"""
voterelay.api.routes.webhooks — Inbound vote webhooks
======================================================

One URL per (listing site, application).  The body is read as raw bytes
because the v1 signature covers the exact bytes Top.gg sent; any
re-serialization would break verification.

Top.gg has three paths (``/v0``, ``/v1`` and the unversioned legacy one)
that all go through the same handler: the protocol version is decided by
the request headers, not the URL.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response

from voterelay.api.deps import IngestionService
from voterelay.errors import IngestionError
from voterelay.services.ingestion import IngestionResult

router = APIRouter(prefix="/webhook", tags=["webhooks"])


def _respond(result: IngestionResult) -> Response:
    return Response(status_code=result.status_code)


# ---------------------------------------------------------------------------
# POST /webhook/topgg/...
# ---------------------------------------------------------------------------
@router.post("/topgg/v0/{application_id}")
@router.post("/topgg/v1/{application_id}")
@router.post("/topgg/{application_id}")
async def topgg_webhook(application_id: str, request: Request, service: IngestionService):
    body = await request.body()
    try:
        result = await service.handle_topgg(application_id, request.headers, body)
    except IngestionError as e:
        raise HTTPException(e.status_code, e.message)
    return _respond(result)


# ---------------------------------------------------------------------------
# POST /webhook/dbl/{application_id}
# ---------------------------------------------------------------------------
@router.post("/dbl/{application_id}")
async def dbl_webhook(application_id: str, request: Request, service: IngestionService):
    body = await request.body()
    try:
        result = await service.handle_dbl(application_id, request.headers, body)
    except IngestionError as e:
        raise HTTPException(e.status_code, e.message)
    return _respond(result)
