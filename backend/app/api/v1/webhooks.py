"""
Twilio WhatsApp webhook for Manyanza
Inbound messages drive the booking conversation; replies go out through the REST API
"""
import logging
from typing import Dict
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from twilio.request_validator import RequestValidator

from app.core.config import settings
from app.core.errors import DeliveryError
from app.core.security import redact_sensitive_data
from app.services.chatbot.orchestrator import ConversationStateMachine, InboundMessage, get_state_machine
from app.services.notifications.gateway import WHATSAPP_PREFIX

logger = logging.getLogger(__name__)

router = APIRouter()

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def twiml_message(text: str) -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?><Response><Message>{escape(text)}</Message></Response>'


def inbound_from_form(form: Dict[str, str]) -> InboundMessage:
    sender = form.get("From", "")
    if sender.startswith(WHATSAPP_PREFIX):
        sender = sender[len(WHATSAPP_PREFIX):]

    media_url = None
    try:
        if int(form.get("NumMedia") or 0) > 0:
            media_url = form.get("MediaUrl0") or None
    except ValueError:
        media_url = None

    return InboundMessage(
        phone_number=sender.strip(),
        body=(form.get("Body") or "").strip(),
        media_url=media_url,
        message_sid=form.get("MessageSid"),
    )


async def verify_twilio_request(request: Request) -> Dict[str, str]:
    """Parse the form body and check X-Twilio-Signature"""
    form = {k: str(v) for k, v in (await request.form()).items()}

    if not settings.TWILIO_VALIDATE_SIGNATURE:
        return form

    if not settings.TWILIO_AUTH_TOKEN:
        if settings.ENVIRONMENT == "production":
            logger.error("TWILIO_AUTH_TOKEN not configured in production")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error"
            )
        logger.warning("TWILIO_AUTH_TOKEN not configured - skipping signature check in development")
        return form

    url = settings.TWILIO_WEBHOOK_URL or str(request.url)
    validator = RequestValidator(settings.TWILIO_AUTH_TOKEN)
    if not validator.validate(url, form, request.headers.get("X-Twilio-Signature", "")):
        logger.warning("Rejected webhook with invalid Twilio signature")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid signature"
        )
    return form


@router.post("/twilio")
async def twilio_whatsapp_webhook(
    form: Dict[str, str] = Depends(verify_twilio_request),
    machine: ConversationStateMachine = Depends(get_state_machine),
):
    """
    Inbound WhatsApp message from Twilio.

    StorageError propagates (503) so Twilio retries the message. If the reply
    cannot be sent through the REST API it is returned inline as TwiML.
    """
    message = inbound_from_form(form)
    if not message.phone_number:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing sender"
        )

    reply = await machine.handle_message(message)

    try:
        await machine.deliver(reply)
    except DeliveryError as e:
        logger.error(f"❌ Reply to {redact_sensitive_data(message.phone_number)} not delivered, "
                     f"falling back to TwiML: {redact_sensitive_data(str(e))}")
        return Response(content=twiml_message(reply.text), media_type="application/xml")

    return Response(content=EMPTY_TWIML, media_type="application/xml")
