"""Domain packages: calendar, registrations, payments"""
