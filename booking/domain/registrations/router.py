"""Registrations router - availability check and admin registration management"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from ...dependencies import (
    get_calendar_mutator,
    get_registration_service,
    verify_admin_key,
)
from ...exceptions import (
    CalendarEventNotFoundError,
    CalendarUnavailableError,
    CapacityNotInitializedError,
    RegistrationNotFoundError,
    SoldOutError,
    StoreUnavailableError,
)
from ..calendar.mutator import CalendarMutator
from ..calendar.schemas import BookingDetails
from .schemas import BookingType, CapacityUpdate, RegistrationUpdate
from .service import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/registrations", tags=["Registrations"])
admin_router = APIRouter(
    prefix="/admin/registrations", tags=["Admin"], dependencies=[Depends(verify_admin_key)]
)


@router.get("/{event_id}/availability")
async def get_availability(
    event_id: str,
    players: int = Query(default=1, ge=1),
    service: RegistrationService = Depends(get_registration_service),
):
    """Pre-payment check: 409 when the event cannot take this many players"""
    try:
        return service.check_availability(event_id, players)
    except SoldOutError as e:
        return JSONResponse(
            status_code=409,
            content={
                "error": "sold_out",
                "currentRegistrations": e.current,
                "maxCapacity": e.maximum,
            },
        )


# ============================================================================
# ADMIN
# ============================================================================


@admin_router.get("")
async def list_registrations(service: RegistrationService = Depends(get_registration_service)):
    """Every stored capacity document"""
    try:
        documents = service.list_documents()
        return {
            "events": [d.to_storage() for d in documents],
            "total": len(documents),
            "totalRegistrations": sum(d.current_registrations for d in documents),
        }
    except Exception as e:
        logger.error(f"❌ Error listing registrations: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to list registrations")


@admin_router.get("/{event_id}")
async def get_registrations(event_id: str, service: RegistrationService = Depends(get_registration_service)):
    result = service.store.fetch(event_id)
    if not result.ok:
        raise HTTPException(status_code=503, detail="Registration store unavailable")
    if not result.document.exists:
        raise HTTPException(status_code=404, detail="No registrations for this event")
    return result.document.to_storage()


@admin_router.put("/{event_id}/capacity")
async def update_capacity(
    event_id: str,
    body: CapacityUpdate,
    service: RegistrationService = Depends(get_registration_service),
):
    """Admin override; wins over description and default capacity"""
    try:
        return service.set_capacity(event_id, body.max_capacity).to_storage()
    except CapacityNotInitializedError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailableError as e:
        logger.error(f"❌ Capacity update failed for {event_id}: {e}")
        raise HTTPException(status_code=503, detail="Registration store unavailable")


@admin_router.patch("/{event_id}/{registration_id}")
async def update_registration(
    event_id: str,
    registration_id: str,
    body: RegistrationUpdate,
    service: RegistrationService = Depends(get_registration_service),
):
    try:
        return service.update_registration(event_id, registration_id, body).to_storage()
    except (CapacityNotInitializedError, RegistrationNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailableError as e:
        logger.error(f"❌ Registration update failed for {event_id}/{registration_id}: {e}")
        raise HTTPException(status_code=503, detail="Registration store unavailable")


@admin_router.delete("/{event_id}/{registration_id}")
async def delete_registration(
    event_id: str,
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service),
):
    try:
        return service.delete_registration(event_id, registration_id).to_storage()
    except (CapacityNotInitializedError, RegistrationNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailableError as e:
        logger.error(f"❌ Registration delete failed for {event_id}/{registration_id}: {e}")
        raise HTTPException(status_code=503, detail="Registration store unavailable")


@admin_router.post("/{event_id}/{registration_id}/calendar-sync")
async def sync_registration_to_calendar(
    event_id: str,
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service),
    mutator: Optional[CalendarMutator] = Depends(get_calendar_mutator),
):
    """Re-run the calendar update for a stored registration (after a calendar outage)"""
    try:
        if mutator is None:
            raise HTTPException(status_code=500, detail="Server configuration error: calendar not configured")

        result = service.store.fetch(event_id)
        if not result.ok:
            raise HTTPException(status_code=503, detail="Registration store unavailable")
        registration = result.document.find_registration(registration_id)
        if registration is None:
            raise HTTPException(status_code=404, detail="Registration not found")

        booking_type = result.document.event_type or BookingType.OTHER
        outcome = await mutator.mark_booked(event_id, BookingDetails.from_registration(registration, booking_type))
        logger.info(f"✅ Calendar sync for {event_id}/{registration_id}: {outcome.model_dump()}")
        return {"success": True, **outcome.model_dump()}

    except HTTPException:
        raise
    except CalendarEventNotFoundError:
        raise HTTPException(status_code=404, detail="Calendar event not found")
    except CalendarUnavailableError as e:
        logger.error(f"❌ Calendar sync failed for {event_id}: {str(e)}")
        raise HTTPException(status_code=502, detail="Calendar unavailable, try again later")
    except Exception as e:
        logger.error(f"❌ Calendar sync error for {event_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Calendar sync failed: {str(e)}")
