"""Typed keys for objects stored on the aiohttp application."""

from aiohttp import web

from booking import BookingService, SlotCalculator, StatusManager
from db import SupabaseClient
from notifications import EmailNotifier

DB_KEY = web.AppKey("db", SupabaseClient)
NOTIFIER_KEY = web.AppKey("notifier", EmailNotifier)
SLOTS_KEY = web.AppKey("slot_calculator", SlotCalculator)
BOOKING_KEY = web.AppKey("booking_service", BookingService)
STATUS_KEY = web.AppKey("status_manager", StatusManager)
