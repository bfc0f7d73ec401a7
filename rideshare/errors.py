# rideshare/errors.py
from __future__ import annotations


class RegistrationError(Exception):
    """Base class for failures surfaced to callers of the registrar."""


class InvalidRideRequest(RegistrationError):
    """Pickup, destination, departure time or vehicle info is missing or malformed."""


class PersistenceError(RegistrationError):
    """An insert/update inside the unit of work failed; nothing was kept."""


class MatcherError(Exception):
    """Candidate query or scoring failed. Carried in a MatchError, never raised out of the matcher."""


class SeatConflict(Exception):
    """Another registration claimed the seat (or the member) first."""
