#!/usr/bin/env python3
"""
Script to list every stored registration document
Usage: python list_registrations.py [event_id]
Reads the S3/R2 bucket configured in .env
"""

import sys

from booking.domain.registrations.repository import CapacityStore
from booking.exceptions import StoreUnavailableError
from booking.storage import ObjectStore, is_storage_configured


def print_document(document):
    print("─" * 60)
    print(f"Event ID: {document.event_id}")
    print(f"  Type: {document.event_type.value if document.event_type else 'unknown'}")
    source = document.capacity_source.value if document.capacity_source else "unset"
    print(f"  Max Capacity: {document.max_capacity} ({source})")
    print(f"  Current Registrations: {document.current_registrations}")
    print(f"  Created: {document.created_at}")
    print(f"  Updated: {document.updated_at}")
    if document.registrations:
        print("  Registrations:")
        for idx, reg in enumerate(document.registrations, start=1):
            print(f"    {idx}. {reg.display_name} x{reg.player_count} [{reg.status.value}] ({reg.timestamp})")
            print(f"       Guardian: {reg.guardian_email}")
            print(f"       Session: {reg.id}")
    print("")


def list_registrations(event_id=None):
    """Print one document, or all of them"""
    if not is_storage_configured():
        print("❌ Missing S3_ACCESS_KEY_ID or S3_SECRET_ACCESS_KEY")
        print("   Set these in your .env file")
        sys.exit(1)

    store = CapacityStore(ObjectStore())

    try:
        if event_id:
            result = store.fetch(event_id)
            if not result.ok:
                raise result.error
            if not result.document.exists:
                print(f"❌ No registration found for event ID: {event_id}")
                sys.exit(1)
            print_document(result.document)
            return

        print("📋 Fetching all registrations...\n")
        documents = store.list_all()
        if not documents:
            print("No registrations found.")
            return

        print(f"Found {len(documents)} registration document(s):\n")
        for document in documents:
            print_document(document)

        total = sum(d.current_registrations for d in documents)
        print(f"{'=' * 60}")
        print(f"✅ {total} registered player(s) across {len(documents)} event(s)")

    except StoreUnavailableError as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    list_registrations(sys.argv[1] if len(sys.argv) > 1 else None)
