"""Booking consistency service - calendar-driven registrations with payment webhooks"""
