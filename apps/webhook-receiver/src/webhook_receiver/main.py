"""
Webhook Receiver Service

FastAPI app that receives WhatsApp Business webhooks for every tenant.

Responsibilities:
- Answer the subscription challenge for the tenant owning the verify token
- Resolve the tenant from the payload routing ids
- Verify the webhook signature with the tenant's app secret
- Publish the raw payload to Redis Streams for async processing
- Return quickly; reconciliation happens in the processor
"""

import json
import logging

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session

from webhook_core.db import get_db
from webhook_core.logging import setup_logging
from webhook_core.redis import get_redis_client
from webhook_core.settings import get_settings

from campaign_webhooks.contracts.envelope import WebhookEnvelope
from campaign_webhooks.errors import (
    MalformedPayloadError,
    SignatureInvalidError,
    TenantNotFoundError,
    WebhookIngestError,
)
from campaign_webhooks.meta.payload import extract_metadata
from campaign_webhooks.meta.signature import SIGNATURE_HEADER, verify_signature
from campaign_webhooks.routing.tenant_resolver import TenantResolver
from campaign_webhooks.streams.groups import ensure_streams
from campaign_webhooks.streams.producer import WebhookStreamProducer

setup_logging()
logger = logging.getLogger(__name__)

SUBSCRIBE_MODE = "subscribe"

ERROR_STATUS = {
    TenantNotFoundError: 403,
    SignatureInvalidError: 403,
    MalformedPayloadError: 500,
}

app = FastAPI(
    title="Webhook Receiver",
    description="Receives WhatsApp webhooks and publishes them to Redis Streams",
    version="1.0.0",
)


def get_producer() -> WebhookStreamProducer:
    """Stream producer dependency."""
    return WebhookStreamProducer(get_redis_client())


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.on_event("startup")
async def startup():
    """Ensure Redis streams exist on startup."""
    try:
        ensure_streams(get_redis_client())
        logger.info("Webhook receiver started")
    except Exception as e:
        logger.error(f"Failed to initialize streams: {e}")
        raise


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "webhook-receiver"}


@app.get("/webhook")
def verify_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
    db: Session = Depends(get_db),
):
    """
    Handle the subscription challenge.

    The challenge is echoed only when the mode is "subscribe" and the token
    belongs to an active organization.
    """
    logger.info(
        "Webhook verification request",
        extra={
            "mode": hub_mode,
            "token_received": bool(hub_verify_token),
        },
    )

    try:
        organization = None
        if hub_mode == SUBSCRIBE_MODE:
            organization = TenantResolver(db).resolve_by_verify_token(hub_verify_token)
    except Exception as e:
        logger.error(f"Webhook verification error: {e}", exc_info=True)
        return error_response(500, "Internal server error")

    if organization is None:
        logger.warning("Webhook verification failed")
        return error_response(403, "Forbidden")

    logger.info(
        "Webhook verification successful",
        extra={"organization_id": str(organization.id)},
    )
    return PlainTextResponse(content=hub_challenge or "")


@app.post("/webhook")
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    producer: WebhookStreamProducer = Depends(get_producer),
):
    """
    Receive a webhook delivery.

    Flow:
    1. Parse the body
    2. Resolve the organization (business account id, then phone number id)
    3. Verify the signature with the organization's app secret
    4. Publish the raw payload and metadata to the inbound stream
    5. Return 200 with the stream id
    """
    body = await request.body()

    try:
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise MalformedPayloadError(f"Invalid JSON payload: {e}") from e

        settings = get_settings()
        resolver = TenantResolver(db)

        organization = resolver.resolve_from_payload(payload)
        if organization is None:
            raise TenantNotFoundError()

        secret = resolver.get_signing_secret(organization, settings.SECRET_ENCRYPTION_KEY)
        if secret:
            if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret):
                raise SignatureInvalidError(
                    details={"organization_id": str(organization.id)},
                )
        else:
            logger.warning(
                f"No app secret configured for organization {organization.id}, "
                f"skipping signature verification",
                extra={"organization_id": str(organization.id)},
            )

        metadata = extract_metadata(payload)
        headers = {
            name: request.headers[name]
            for name in settings.FORWARDED_HEADERS
            if name in request.headers
        }
        envelope = WebhookEnvelope.create(
            payload=payload,
            metadata=metadata,
            headers=headers,
            source_ip=request.client.host if request.client else None,
        )
        msg_id = producer.publish(envelope)

    except WebhookIngestError as e:
        status_code = ERROR_STATUS.get(type(e), 500)
        logger.warning(
            f"Webhook rejected: {e}",
            extra={"code": e.code, "status_code": status_code, **e.details},
        )
        if status_code == 500:
            return error_response(500, "Internal server error")
        return error_response(status_code, str(e))

    except Exception as e:
        logger.error(f"Error receiving webhook: {e}", exc_info=True)
        return error_response(500, "Internal server error")

    logger.info(
        "Webhook queued",
        extra={
            "msg_id": msg_id,
            "organization_id": str(organization.id),
            "event_kind": metadata.event_kind,
            "message_count": metadata.message_count,
            "status_count": metadata.status_count,
        },
    )

    return {
        "status": "success",
        "messageId": msg_id,
        "timestamp": envelope.received_at.isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8090)
