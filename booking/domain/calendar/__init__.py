"""Calendar domain - event classification, calendar client and booked-slot projection"""
