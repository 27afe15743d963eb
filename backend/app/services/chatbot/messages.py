"""
WhatsApp reply text for the booking flow
Wording is free to change; the quote headers (Route, Distance, Overnight Stays,
PRICE BREAKDOWN, TOTAL) are relied upon by tests and ops tooling.
"""
from typing import Optional

from app.services.chatbot.states import PartialBooking
from app.services.pricing.engine import VEHICLE_TYPES, PricingEngine, PricingResult

VEHICLE_DESCRIPTIONS = {
    "pickup": "Small cargo transport",
    "van": "Medium goods/passengers",
    "truck": "Large cargo",
    "saloon": "4-5 passengers",
    "suv": "7+ passengers",
    "bus": "Large groups",
    "lorry": "Heavy goods",
    "motorcycle": "Quick delivery",
}

DATE_EXAMPLES = '• "Today"\n• "Tomorrow"\n• "December 15"\n• "Next Monday"\n• "15/12/2026"'

DATE_ERRORS = {
    "past": "That date has already passed.",
    "too_far": "We only take bookings up to a year ahead.",
    "ambiguous": "Please write the year in full (e.g. 05/06/2027) so we read the date correctly.",
    "unrecognized": "Sorry, I couldn't understand that date.",
}


def menu_text() -> str:
    return (
        "🚗 *Welcome to Manyanza Vehicle Transit*\n\n"
        "How can I help you today?\n\n"
        "📋 *Services:*\n"
        "• Type 'BOOK' - Book vehicle transit\n"
        "• Type 'PRICE' - View pricing rates\n"
        "• Type 'DRIVER' - Become a driver\n"
        "• Type 'HELP' - Show this menu\n"
        "• Type 'CANCEL' - Cancel the current booking\n\n"
        "💬 Or just tell me what you need!"
    )


def pricing_info_text(engine: PricingEngine) -> str:
    """Current rates plus a quick estimate for every catalog corridor"""
    cfg = engine.config
    lines = [
        "💰 *Manyanza Transparent Pricing*",
        "",
        "📊 *Per-Kilometer Model:*",
        f"• TSh {cfg.rate_per_km:,} per kilometer",
        f"• TSh {cfg.per_diem_rate:,} per overnight stay",
        f"• Platform commission: {cfg.platform_commission_default * 100:g}%",
        "",
        "🛣️ *Popular Routes:*",
    ]
    for corridor in engine.catalog:
        estimate = engine.estimate_corridor(corridor.key)
        lines.append(f"• {corridor.display_name}: ~{estimate.customer_total.format()}")
    lines += [
        "",
        "*Excludes: Fuel, tolls, permits",
        "",
        "📱 Type 'BOOK' to get an exact quote!",
    ]
    return "\n".join(lines)


def driver_info_text() -> str:
    return (
        "👨‍💼 *Become a Manyanza Driver*\n\n"
        "Interested in joining our professional driver network?\n\n"
        "📋 Requirements:\n"
        "• Valid driver's license\n"
        "• 3+ years experience\n"
        "• Police clearance\n"
        "• Age 25-55\n\n"
        "Reply 'BOOK' to book a trip or call us for assistance."
    )


def vehicle_options() -> str:
    rows = [f"• {v.upper()} - {VEHICLE_DESCRIPTIONS[v]}" for v in VEHICLE_TYPES]
    return "🚗 *Available Vehicles:*\n" + "\n".join(rows)


# === STEP PROMPTS ===

def pickup_prompt() -> str:
    return (
        "📍 *Step 1: Pickup Location*\n"
        "Please tell me where the vehicle should be picked up from:\n\n"
        'Example: "Dar es Salaam CBD" or "Kariakoo Market"'
    )


def start_booking_text() -> str:
    return "🚗 *Welcome to Manyanza Vehicle Transit!*\n\nI'll help you book professional vehicle transit.\n\n" + pickup_prompt()


def location_too_short(what: str) -> str:
    return f"Please send a {what} of at least 3 characters."


def destination_prompt(pickup: str) -> str:
    return (
        f"✅ Pickup: {pickup}\n\n"
        "📍 *Step 2: Destination*\n"
        "Where should the vehicle be delivered?\n\n"
        'Example: "Mwanza City" or "Tunduma Border"'
    )


def vehicle_prompt(destination: str, corridor_name: Optional[str] = None) -> str:
    route = f"\n🛣️ Route detected: {corridor_name}" if corridor_name else ""
    return (
        f"✅ Destination: {destination}{route}\n\n"
        "🚙 *Step 3: Vehicle Type*\n"
        "What type of vehicle do you need?\n\n"
        f"{vehicle_options()}\n\n"
        'Just type the vehicle type (e.g. "pickup" or "van")'
    )


def invalid_vehicle_text() -> str:
    return f"Please select a valid vehicle type:\n\n{vehicle_options()}\n\nType the vehicle name (e.g. \"pickup\")"


def date_prompt(vehicle_type: str) -> str:
    return (
        f"✅ Vehicle: {vehicle_type.upper()}\n\n"
        "📅 *Step 4: Pickup Date*\n"
        "When do you need the vehicle?\n\n"
        f"Examples:\n{DATE_EXAMPLES}"
    )


def invalid_date_text(error: Optional[str]) -> str:
    reason = DATE_ERRORS.get(error or "unrecognized", DATE_ERRORS["unrecognized"])
    return f"{reason}\n\nPlease send the pickup date, for example:\n{DATE_EXAMPLES}"


# === QUOTE / PAYMENT ===

def quote_text(booking: PartialBooking, pricing: PricingResult) -> str:
    """Confirmation summary shown before the client says yes"""
    route = pricing.corridor_name or f"{booking.pickup_location} → {booking.destination} (Custom Route)"
    lines = ["🚗 *Manyanza Transit Quote*", ""]
    lines.append(f"Route: {route}")
    lines.append(f"Pickup: {booking.pickup_location}")
    lines.append(f"Destination: {booking.destination}")
    lines.append(f"Vehicle: {(booking.vehicle_type or '').upper()}")
    if booking.pickup_date:
        lines.append(f"Date: {booking.pickup_date.strftime('%a %d %b %Y')}")
    lines.append(f"Distance: {pricing.distance_km:g} km")
    lines.append(f"Overnight Stays: {pricing.nights} night(s)")
    lines.append("")

    lines.append("PRICE BREAKDOWN:")
    lines.append(f"* Base Distance Fee: {pricing.base_distance_fee.format()}")
    lines.append(f"* Per Diem: {pricing.per_diem_fee.format()}")
    lines.append(f"* Return Travel: {pricing.return_travel_fee.format()}")
    if pricing.waiting_fee.amount > 0:
        lines.append(f"* Waiting Fee: {pricing.waiting_fee.format()}")
    if pricing.after_hours_fee.amount > 0:
        lines.append(f"* After-Hours: {pricing.after_hours_fee.format()}")
    lines.append(f"* Commission ({pricing.commission_rate * 100:g}%): {pricing.commission_amount.format()}")
    lines.append("")
    lines.append(f"TOTAL: {pricing.customer_total.format()}")

    if pricing.is_custom_route:
        lines.append("")
        lines.append("⚠️ Custom route: this is an estimate. Our team will confirm the final distance.")

    lines.append("")
    lines.append(confirm_options_text())
    return "\n".join(lines)


def confirm_options_text() -> str:
    return "Reply *YES* to confirm this booking or *NO* to change the details."


def payment_instructions(booking_code: str, pricing: PricingResult, mpesa_number: str, tigopesa_number: str) -> str:
    return (
        "💳 *Payment Required*\n\n"
        f"📋 Booking: #{booking_code}\n"
        f"💰 Amount: *{pricing.customer_total.format()}*\n\n"
        "💸 *Payment Methods:*\n"
        f"• M-Pesa: {mpesa_number}\n"
        f"• TigoPesa: {tigopesa_number}\n"
        "• Bank Transfer: Contact us\n\n"
        "📷 Send a photo of your payment proof here after paying."
    )


def payment_proof_reprompt(booking_code: Optional[str]) -> str:
    ref = f" for booking #{booking_code}" if booking_code else ""
    return f"📷 Please send a photo or screenshot of your payment proof{ref}.\n\nType 'CANCEL' to cancel the booking."


def proof_received_text(booking_code: str) -> str:
    return (
        "📷 Payment proof received!\n\n"
        "⏳ We're verifying your payment. You'll receive confirmation within 30 minutes.\n\n"
        f"📋 Your booking reference: #{booking_code}\n\n"
        "Thank you for choosing Manyanza! 🙏"
    )


def cancelled_text(booking_code: Optional[str] = None) -> str:
    ref = f" Booking #{booking_code} has been cancelled." if booking_code else ""
    return f"❌ Cancelled.{ref}\n\nType 'BOOK' whenever you want to start again, or 'HELP' for the menu."


def booking_missing_text(booking_code: str) -> str:
    return (
        f"⚠️ We couldn't find booking #{booking_code} any more. Please contact us on +255765111131.\n\n"
        "Type 'BOOK' to make a new booking."
    )


def restart_text() -> str:
    return "Sorry, I lost track of your booking details. Let's start again.\n\n" + pickup_prompt()


def ops_new_booking_text(booking_code: str, booking: PartialBooking, pricing: PricingResult, client_phone: str) -> str:
    """Operations desk alert for a booking created over WhatsApp"""
    return (
        f"🆕 New booking #{booking_code}\n"
        f"Client: {client_phone}\n"
        f"Route: {booking.pickup_location} → {booking.destination}\n"
        f"Vehicle: {(booking.vehicle_type or '').upper()}\n"
        f"Date: {booking.pickup_date.isoformat() if booking.pickup_date else '-'}\n"
        f"TOTAL: {pricing.customer_total.format()}\n"
        "Status: pending payment"
    )


# === PAYMENT REVIEW ===

def payment_verified_text(booking_code: str) -> str:
    return (
        "💳 *PAYMENT VERIFIED!*\n\n"
        f"📋 Booking: #{booking_code}\n"
        "✅ Your payment has been confirmed.\n\n"
        "🔄 *Next Steps:*\n"
        "• We're assigning a driver\n"
        "• You'll receive driver details within 2 hours\n"
        "• Driver will contact you directly\n\n"
        "🙏 Thank you for your payment!"
    )


def payment_rejected_text(booking_code: str, reason: Optional[str] = None) -> str:
    reason_line = f"Reason: {reason}\n\n" if reason else ""
    return (
        "❌ *PAYMENT VERIFICATION ISSUE*\n\n"
        f"📋 Booking: #{booking_code}\n"
        "⚠️ We couldn't verify your payment.\n\n"
        f"{reason_line}"
        "🔄 Please check the payment details and reply with a clear screenshot "
        "showing the amount and transaction reference.\n\n"
        "📞 Need help? Call +255765111131."
    )
