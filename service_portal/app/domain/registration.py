"""
Event registration workflow.
"""

from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger
from .models import Event, Registration, utcnow
from .repositories import Clock, EventRepository, RegistrationRepository, parse_registered_at
from .validation import RegistrationRequest

REGISTRATION_CUTOFF = timedelta(hours=1)


class RegistrationService:
    """Registers attendees for upcoming events."""

    def __init__(
        self,
        events: EventRepository,
        registrations: RegistrationRepository,
        *,
        cutoff: timedelta = REGISTRATION_CUTOFF,
        clock: Clock = utcnow,
    ):
        self.events = events
        self.registrations = registrations
        self.cutoff = cutoff
        self._clock = clock
        self.logger = get_logger("portal.registration")

    async def register(self, request: RegistrationRequest) -> Dict[str, Any]:
        """Validate the target event and append a registration row.

        Raises NotFoundError when the event is not an upcoming visible event,
        ValidationError when registration has closed, and ConflictError when
        the email is already registered for the event.
        """
        event = await self.events.find_upcoming(request.event_id)
        if event is None:
            raise NotFoundError(
                "Event not found or not available for registration",
                details={"event_id": request.event_id},
            )

        now = self._clock()
        starts_at = event.starts_at
        if starts_at is None or starts_at <= now:
            raise ValidationError("Registration is closed. This event has already started or ended.")
        if now >= starts_at - self.cutoff:
            raise ValidationError("Registration deadline has passed")

        existing = await self.registrations.find(request.event_id, request.email)
        if existing is not None:
            self.logger.info("Duplicate registration rejected", event_id=request.event_id)
            raise ConflictError(
                "You are already registered for this event",
                details={"event_id": request.event_id, "registration_id": existing.id},
            )

        registration = await self.registrations.add(
            event_id=request.event_id,
            name=request.name,
            email=request.email,
            phone=request.phone,
            department=request.department,
            year=request.year,
            additional_info=request.additional_info,
        )

        return {
            "id": registration.id,
            "event_id": registration.event_id,
            "name": registration.name,
            "email": registration.email,
            "event_title": event.title,
            "event_date": event.date_iso,
            "event_location": event.location,
        }

    async def verify(self, email: str, event_id: str) -> Dict[str, Any]:
        registration = await self.registrations.find(event_id, email)
        if registration is None:
            return {"registered": False, "message": "No registration found for this email and event"}
        event = await self.events.find_upcoming(event_id)
        return {
            "registered": True,
            "registration": registration.to_dict(),
            "event": event.to_dict() if event else None,
        }

    async def stats(self) -> Dict[str, Any]:
        registrations = await self.registrations.list_all()
        events = await self.events.list_upcoming()
        titles = {event.id: event.title for event in events}
        counts = Counter(registration.event_id for registration in registrations if registration.event_id)

        return {
            "total_registrations": len(registrations),
            "active_events": len(events),
            "events_with_registrations": len(counts),
            "top_events": [
                {
                    "event_id": event_id,
                    "event_title": titles.get(event_id, "Unknown Event"),
                    "registration_count": count,
                }
                for event_id, count in counts.most_common(5)
            ],
        }

    async def list_newest_first(self) -> List[Registration]:
        registrations = await self.registrations.list_all()
        return sorted(registrations, key=parse_registered_at, reverse=True)

    async def list_for_event(self, event_id: str) -> Dict[str, Any]:
        registrations = await self.registrations.list_for_event(event_id)
        event: Optional[Event] = await self.events.find_upcoming(event_id)
        return {
            "event": event.to_dict() if event else None,
            "registrations": [registration.to_dict() for registration in registrations],
            "count": len(registrations),
        }
