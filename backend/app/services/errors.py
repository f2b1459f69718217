"""Typed RSVP rule violations.

Every rule the registry enforces fails with one of these. Each carries a
stable ``kind`` for clients to branch on, the HTTP status the API maps it to,
and a message that can be shown to the user as-is.
"""
from typing import Optional


class RegistryError(Exception):
    kind = "RegistryError"
    status_code = 400
    default_message = "The RSVP change could not be applied."

    def __init__(self, message: Optional[str] = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"kind": self.kind, "message": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class DuplicatePrimaryError(RegistryError):
    kind = "DuplicatePrimary"
    status_code = 409
    default_message = "You already have an RSVP for this event."


class CapacityExceededError(RegistryError):
    kind = "CapacityExceeded"
    status_code = 409
    default_message = "This event is full."

    @classmethod
    def for_event(cls, going_count: int, max_attendees: Optional[int], waitlist_enabled: bool):
        if not waitlist_enabled:
            message = f"This event is full ({going_count}/{max_attendees}) and has no waitlist."
            reason = "waitlist_disabled"
        else:
            message = f"This event is full ({going_count}/{max_attendees}) and the waitlist is full."
            reason = "waitlist_full"
        return cls(message, reason=reason, going_count=going_count, max_attendees=max_attendees)


class PrimaryRequiredError(RegistryError):
    kind = "PrimaryRequired"
    status_code = 409
    default_message = "Add your own RSVP before adding family members."


class PrimaryNotGoingError(RegistryError):
    kind = "PrimaryNotGoing"
    status_code = 409
    default_message = "You must be going before family members can attend."


class PrimaryNotRemovableError(RegistryError):
    kind = "PrimaryNotRemovable"
    status_code = 409
    default_message = "Your own RSVP cannot be removed; set it to not going instead."


class AlreadyLinkedError(RegistryError):
    kind = "AlreadyLinked"
    status_code = 409
    default_message = "Your own RSVP is already linked to your profile."


class NotFoundError(RegistryError):
    kind = "NotFound"
    status_code = 404
    default_message = "Not found."

    @classmethod
    def of(cls, resource: str, identifier: Optional[str] = None):
        return cls(f"{resource} not found.", resource=resource, id=identifier)


class PermissionDeniedError(RegistryError):
    kind = "PermissionDenied"
    status_code = 403
    default_message = "You can only change your own RSVPs."


class AttendeeReadOnlyError(RegistryError):
    kind = "AttendeeReadOnly"
    status_code = 403
    default_message = "Imported attendees cannot be changed."


class StatusNotAllowedError(RegistryError):
    kind = "StatusNotAllowed"
    status_code = 422

    def __init__(self, status: str):
        super().__init__(f"RSVP status '{status}' is not enabled.", status=status)


class InvalidFamilyProfileError(RegistryError):
    kind = "InvalidFamilyProfile"
    status_code = 422

    def __init__(self, errors: list[str]):
        super().__init__("Validation failed: " + ", ".join(errors), errors=errors)


class CapacityBelowAttendanceError(RegistryError):
    kind = "CapacityBelowAttendance"
    status_code = 409
    default_message = "Capacity cannot be lowered below the current attendance."
