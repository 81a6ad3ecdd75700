"""
Application-wide constants.
Centralizes magic numbers and configuration values.
"""

# Validation limits
MAX_NOTES_LENGTH = 1000
MAX_PAYMENT_METHOD_ID_LENGTH = 255

# Statuses that hold a slot
SLOT_HOLDING_STATUSES = ("pending", "confirmed")

# Postgres error codes surfaced by PostgREST
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"

# Stripe amounts are expressed in the currency's smallest unit
MINOR_UNITS_PER_MAJOR = 100
