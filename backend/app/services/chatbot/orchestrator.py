"""
Manyanza WhatsApp Booking Orchestrator
- Async-safe Firestore operations (asyncio.to_thread)
- Closed state enum with one handler per state
- Intent gate for global commands (help / cancel), no LLM
- Day-first date parsing with Tanzania-local "today"
- Corridor auto-detection and live-config pricing
- Per-phone serialisation of the get-modify-put cycle
"""
import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.config import settings
from app.core.errors import BookingNotFoundError
from app.core.firebase import get_db
from app.core.security import redact_sensitive_data
from app.services.bookings.finalizer import BookingFinalizer
from app.services.bookings.repository import BookingRepository, FirestoreBookingRepository
from app.services.chatbot import messages
from app.services.chatbot.date_parser import DateParser
from app.services.chatbot.intents import (
    IntentGate,
    confirmation_reply,
    idle_intent,
    match_vehicle_type,
    normalize_whitespace,
)
from app.services.chatbot.states import ConversationContext, ConversationState, PartialBooking
from app.services.chatbot.store import ConversationStore, FirestoreConversationStore, MessageLog
from app.services.notifications.gateway import DeliveryResult, NotificationGateway, TwilioWhatsAppGateway
from app.services.pricing.config_source import FirestorePricingConfigSource, PricingConfigSource
from app.services.pricing.corridors import CorridorCatalog
from app.services.pricing.engine import PricingConfig, PricingEngine, PricingInput, PricingResult

logger = logging.getLogger(__name__)

MIN_LOCATION_LENGTH = 3

Handler = Callable[["InboundMessage", ConversationContext], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class InboundMessage:
    phone_number: str
    body: str = ""
    media_url: Optional[str] = None
    message_sid: Optional[str] = None


@dataclass(frozen=True)
class ConversationReply:
    phone_number: str
    text: str
    state: ConversationState
    booking_code: Optional[str] = None


class ConversationStateMachine:
    """
    WhatsApp booking dialogue.

    Handlers never touch the context directly. They return a dict with
    "reply", "next_state" and optionally "partial_booking",
    "current_booking_id" and "booking_code"; handle_message applies it and
    persists the context only after the handler succeeded. A StorageError
    from any collaborator therefore leaves the stored context untouched.
    """

    def __init__(
        self,
        *,
        store: ConversationStore,
        pricing_source: PricingConfigSource,
        finalizer: BookingFinalizer,
        repository: BookingRepository,
        gateway: NotificationGateway,
        catalog: Optional[CorridorCatalog] = None,
        intent_gate: Optional[IntentGate] = None,
        date_parser: Optional[DateParser] = None,
        custom_route_default_km: float = 100,
        mpesa_number: str = "",
        tigopesa_number: str = "",
        message_log: Optional[MessageLog] = None,
    ) -> None:
        self.store = store
        self.pricing_source = pricing_source
        self.finalizer = finalizer
        self.repository = repository
        self.gateway = gateway
        self.catalog = catalog or CorridorCatalog()
        self.intent_gate = intent_gate or IntentGate()
        self.date_parser = date_parser or DateParser()
        self.custom_route_default_km = custom_route_default_km
        self.mpesa_number = mpesa_number
        self.tigopesa_number = tigopesa_number
        self.message_log = message_log

        self._handlers: Dict[ConversationState, Handler] = {
            ConversationState.IDLE: self._handle_idle,
            ConversationState.COLLECTING_PICKUP: self._handle_pickup,
            ConversationState.COLLECTING_DESTINATION: self._handle_destination,
            ConversationState.COLLECTING_VEHICLE: self._handle_vehicle,
            ConversationState.COLLECTING_DATE: self._handle_date,
            ConversationState.CONFIRMING_DETAILS: self._handle_confirming,
            ConversationState.AWAITING_PAYMENT: self._handle_awaiting_payment,
            ConversationState.BOOKING_CONFIRMED: self._handle_booking_confirmed,
        }
        missing = set(ConversationState) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for states: {sorted(s.value for s in missing)}")

    async def handle_message(self, message: InboundMessage) -> ConversationReply:
        """
        Process one inbound message for its sender.

        Messages from the same phone number are handled strictly one at a
        time; different numbers run in parallel.

        Raises:
            StorageError: context or booking could not be read/written
        """
        phone = message.phone_number
        async with self.store.lock(phone):
            context = await self.store.get(phone)
            current_state = context.state

            logger.info(
                f"Conversation {redact_sensitive_data(phone)}: state={current_state.value}, "
                f"msg_len={len(message.body or '')}, media={bool(message.media_url)}"
            )

            response = await self._dispatch(message, context)

            self._apply(context, response)
            await self.store.put(phone, context)

            if context.state != current_state:
                logger.info(f"Transition {current_state.value} -> {context.state.value} for {redact_sensitive_data(phone)}")

            if self.message_log is not None:
                await self.message_log.record(phone, "inbound", message.body or "",
                                              message_sid=message.message_sid, media_url=message.media_url)
                await self.message_log.record(phone, "outbound", response["reply"])

        return ConversationReply(
            phone_number=phone,
            text=response["reply"],
            state=context.state,
            booking_code=response.get("booking_code"),
        )

    async def deliver(self, reply: ConversationReply) -> DeliveryResult:
        """Send a reply over WhatsApp. DeliveryError propagates."""
        return await self.gateway.send(reply.phone_number, reply.text)

    async def process_message(self, message: InboundMessage) -> ConversationReply:
        """handle_message, then deliver the reply. State is already saved if delivery fails."""
        reply = await self.handle_message(message)
        await self.deliver(reply)
        return reply

    async def _dispatch(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        gate = self.intent_gate.check(message.body or "")

        if gate.kind == "cancel":
            return await self._handle_cancel(context)

        if gate.kind == "help":
            return {"reply": messages.menu_text(), "next_state": context.state}

        handler = self._handlers[context.state]
        return await handler(message, context)

    @staticmethod
    def _apply(context: ConversationContext, response: Dict[str, Any]) -> None:
        context.transition(response.get("next_state", context.state))
        if "partial_booking" in response:
            context.partial_booking = response["partial_booking"]
        if "current_booking_id" in response:
            context.current_booking_id = response["current_booking_id"]
        if "quote" in response:
            context.set_quote(response["quote_id"], response["quote"])

    # -------------------------
    # Global Commands
    # -------------------------

    async def _handle_cancel(self, context: ConversationContext) -> Dict[str, Any]:
        cancelled_code = None
        if context.state == ConversationState.AWAITING_PAYMENT and context.current_booking_id:
            if await self.repository.mark_cancelled(context.current_booking_id):
                cancelled_code = context.current_booking_id

        return {
            "reply": messages.cancelled_text(cancelled_code),
            "next_state": ConversationState.IDLE,
            "partial_booking": PartialBooking(),
            "current_booking_id": None,
        }

    # -------------------------
    # State Handlers
    # -------------------------

    async def _handle_idle(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        """Main menu: start a booking, show prices or driver info"""
        intent = idle_intent(message.body or "")

        if intent == "book":
            return {
                "reply": messages.start_booking_text(),
                "next_state": ConversationState.COLLECTING_PICKUP,
                "partial_booking": PartialBooking(),
                "current_booking_id": None,
            }

        if intent == "price":
            engine = await self._engine()
            return {"reply": messages.pricing_info_text(engine), "next_state": ConversationState.IDLE}

        if intent == "driver":
            return {"reply": messages.driver_info_text(), "next_state": ConversationState.IDLE}

        return {"reply": messages.menu_text(), "next_state": ConversationState.IDLE}

    async def _handle_pickup(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        text = normalize_whitespace(message.body or "")
        if len(text) < MIN_LOCATION_LENGTH:
            logger.debug("Pickup location too short, re-prompting")
            return {
                "reply": f"{messages.location_too_short('pickup location')}\n\n{messages.pickup_prompt()}",
                "next_state": ConversationState.COLLECTING_PICKUP,
            }

        return {
            "reply": messages.destination_prompt(text),
            "next_state": ConversationState.COLLECTING_DESTINATION,
            "partial_booking": context.partial_booking.update(pickup_location=text),
        }

    async def _handle_destination(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        booking = context.partial_booking
        if not booking.pickup_location:
            return self._restart(context)

        text = normalize_whitespace(message.body or "")
        if len(text) < MIN_LOCATION_LENGTH:
            logger.debug("Destination too short, re-prompting")
            return {
                "reply": messages.location_too_short("destination"),
                "next_state": ConversationState.COLLECTING_DESTINATION,
            }

        corridor = self.catalog.detect_corridor(booking.pickup_location, text)
        if corridor:
            logger.info(f"Corridor detected: {corridor.key}")
            booking = booking.update(
                destination=text,
                corridor_key=corridor.key,
                distance_km=corridor.distance_km,
                nights=corridor.nights,
            )
        else:
            # Custom route: placeholder distance, quote is labelled as an estimate
            booking = booking.update(
                destination=text,
                corridor_key=None,
                distance_km=self.custom_route_default_km,
                nights=0,
            )

        return {
            "reply": messages.vehicle_prompt(text, corridor.display_name if corridor else None),
            "next_state": ConversationState.COLLECTING_VEHICLE,
            "partial_booking": booking,
        }

    async def _handle_vehicle(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        vehicle_type = match_vehicle_type(message.body or "")
        if vehicle_type is None:
            logger.debug("No vehicle type matched, re-prompting")
            return {"reply": messages.invalid_vehicle_text(), "next_state": ConversationState.COLLECTING_VEHICLE}

        return {
            "reply": messages.date_prompt(vehicle_type),
            "next_state": ConversationState.COLLECTING_DATE,
            "partial_booking": context.partial_booking.update(vehicle_type=vehicle_type),
        }

    async def _handle_date(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        booking = context.partial_booking
        if not (booking.pickup_location and booking.destination and booking.vehicle_type and booking.distance_km):
            return self._restart(context)

        result = self.date_parser.parse(message.body or "")
        if not result.is_valid:
            logger.debug(f"Date rejected ({result.error}), re-prompting")
            return {"reply": messages.invalid_date_text(result.error), "next_state": ConversationState.COLLECTING_DATE}

        booking = booking.update(pickup_date=result.date)
        return await self._present_quote(booking)

    async def _handle_confirming(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        answer = confirmation_reply(message.body or "")

        if answer == "yes":
            booking = context.partial_booking
            if not (booking.pickup_location and booking.destination and booking.vehicle_type
                    and booking.pickup_date and booking.distance_km):
                return self._restart(context)

            pricing = context.quote
            if pricing is None:
                logger.warning("Confirmation without a stored quote, quoting again")
                return await self._present_quote(booking)

            booking_code = await self.finalizer.finalize(context, pricing)
            logger.info(f"✅ Booking {booking_code} created from WhatsApp, total {pricing.customer_total.format()}")

            return {
                "reply": messages.payment_instructions(booking_code, pricing, self.mpesa_number, self.tigopesa_number),
                "next_state": ConversationState.AWAITING_PAYMENT,
                "partial_booking": PartialBooking(),
                "current_booking_id": booking_code,
                "booking_code": booking_code,
            }

        if answer == "no":
            return {
                "reply": f"No problem, let's update the details.\n\n{messages.pickup_prompt()}",
                "next_state": ConversationState.COLLECTING_PICKUP,
                "partial_booking": PartialBooking(),
            }

        return {"reply": messages.confirm_options_text(), "next_state": ConversationState.CONFIRMING_DETAILS}

    async def _handle_awaiting_payment(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        booking_code = context.current_booking_id
        if not message.media_url:
            return {
                "reply": messages.payment_proof_reprompt(booking_code),
                "next_state": ConversationState.AWAITING_PAYMENT,
            }

        if not booking_code:
            return self._restart(context)

        note = normalize_whitespace(message.body or "") or None
        try:
            await self.repository.record_payment_proof(booking_code, message.media_url, note)
        except BookingNotFoundError:
            logger.warning(f"Booking {booking_code} vanished while awaiting payment, back to idle")
            return {
                "reply": messages.booking_missing_text(booking_code),
                "next_state": ConversationState.IDLE,
                "partial_booking": PartialBooking(),
                "current_booking_id": None,
            }

        return {
            "reply": messages.proof_received_text(booking_code),
            "next_state": ConversationState.BOOKING_CONFIRMED,
            "booking_code": booking_code,
        }

    async def _handle_booking_confirmed(self, message: InboundMessage, context: ConversationContext) -> Dict[str, Any]:
        """Terminal: the next message starts over from the main menu"""
        response = await self._handle_idle(message, context)
        response.setdefault("current_booking_id", None)
        return response

    # -------------------------
    # Internal Utilities
    # -------------------------

    def _restart(self, context: ConversationContext) -> Dict[str, Any]:
        """Stored context is missing data the current state needs"""
        logger.warning(f"Incomplete booking data in state {context.state.value}, restarting at pickup")
        return {
            "reply": messages.restart_text(),
            "next_state": ConversationState.COLLECTING_PICKUP,
            "partial_booking": PartialBooking(),
            "current_booking_id": None,
        }

    async def _engine(self) -> PricingEngine:
        config = await self.pricing_source.load()
        return PricingEngine(config, self.catalog)

    async def _present_quote(self, booking: PartialBooking) -> Dict[str, Any]:
        """Price the collected booking and ask for confirmation. The quote is kept until the client answers."""
        pricing = await self._quote(booking)
        return {
            "reply": messages.quote_text(booking, pricing),
            "next_state": ConversationState.CONFIRMING_DETAILS,
            "partial_booking": booking,
            "quote": pricing,
            "quote_id": uuid.uuid4().hex,
        }

    async def _quote(self, booking: PartialBooking) -> PricingResult:
        engine = await self._engine()
        return engine.calculate(PricingInput(
            distance_km=booking.distance_km,
            nights=booking.nights or 0,
            corridor_key=booking.corridor_key,
            vehicle_type=booking.vehicle_type,
        ))


# -------------------------
# Dependency Injection
# -------------------------

def build_state_machine(db=None) -> ConversationStateMachine:
    """
    Build the state machine with Firestore-backed collaborators.

    Args:
        db: Firestore client; defaults to the shared client from app.core.firebase
    """
    db = db if db is not None else get_db()
    catalog = CorridorCatalog()
    store = FirestoreConversationStore(db=db, ttl_hours=settings.CONVERSATION_TTL_HOURS)
    pricing_source = FirestorePricingConfigSource(
        PricingConfig.from_settings(settings),
        db=db,
        ttl_seconds=settings.PRICING_CONFIG_TTL_SECONDS,
    )
    repository = FirestoreBookingRepository(db=db)
    gateway = TwilioWhatsAppGateway.from_settings(log_db=db)
    finalizer = BookingFinalizer(repository=repository, gateway=gateway, ops_phone=settings.OPS_NOTIFY_PHONE)
    date_parser = DateParser(timezone=settings.TIMEZONE, max_days_ahead=settings.MAX_BOOKING_DAYS_AHEAD)

    return ConversationStateMachine(
        store=store,
        pricing_source=pricing_source,
        finalizer=finalizer,
        repository=repository,
        gateway=gateway,
        catalog=catalog,
        date_parser=date_parser,
        custom_route_default_km=settings.CUSTOM_ROUTE_DEFAULT_KM,
        mpesa_number=settings.PAYMENT_MPESA_NUMBER,
        tigopesa_number=settings.PAYMENT_TIGOPESA_NUMBER,
        message_log=MessageLog(db=db),
    )


@lru_cache(maxsize=1)
def get_state_machine() -> ConversationStateMachine:
    """Process-wide instance; the per-phone locks live in its store"""
    return build_state_machine()
