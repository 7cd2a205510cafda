"""Registrations domain - capacity documents, registration writes and admin management"""
