"""App-level connectors.

Canonical locations:
  app.connectors.dms.*  dealer management system bookings (Gemini OSI)
"""
from app.connectors.dms.client import get_booking_adapter

__all__ = ["get_booking_adapter"]
