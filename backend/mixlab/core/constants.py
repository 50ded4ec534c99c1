# backend/mixlab/core/constants.py
BRAND_NAME = "MixLab Studio"

API_TITLE = f"{BRAND_NAME} Booking API"
API_DESCRIPTION = "Studio reservations, availability and payment reconciliation."
API_VERSION = "1.0.0"

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]

BOOKING_ID_PREFIX = "MIX"
CASH_REFERENCE_PREFIX = "CASH"

# Real-time channels
ADMIN_CHANNEL = "admins"
USER_CHANNEL_TEMPLATE = "user:{account_id}"

WEBHOOK_TOKEN_HEADER = "x-callback-token"
