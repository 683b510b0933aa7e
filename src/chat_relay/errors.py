# errors.py -- Relay failure taxonomy
# None of these escape the relay; each ends in participant removal or a no-op.

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay failures."""


class TransportUpgradeFailure(RelayError):
    """The connection never became a participant."""


class DeliveryFailure(RelayError):
    """A payload could not be handed to one participant."""


class DuplicateRegistration(RelayError):
    """Participant is already in the registry."""
