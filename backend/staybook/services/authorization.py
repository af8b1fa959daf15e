"""
Ownership-scoped authorization.

Pure predicates over already loaded entities: the booking's listing must be
populated before asking whether a host owns it. Admins bypass ownership but
not the booking state machine, which is enforced elsewhere.
"""

from staybook.domain.enums import Role
from staybook.models.account import Account
from staybook.models.booking import Booking
from staybook.models.listing import Listing


def is_admin(principal: Account) -> bool:
    return principal.role == Role.ADMIN.value


def owns_listing(principal: Account, listing: Listing | None) -> bool:
    return (
        listing is not None
        and principal.role == Role.HOST.value
        and listing.host_id == principal.id
    )


def can_access(principal: Account, booking: Booking) -> bool:
    if is_admin(principal):
        return True
    if principal.role == Role.HOST.value:
        return owns_listing(principal, booking.listing)
    return booking.user_id == principal.id


def can_mutate_as_owner(principal: Account, booking: Booking) -> bool:
    """Status and payment-status changes."""
    return is_admin(principal) or owns_listing(principal, booking.listing)


def can_mutate_as_requester(principal: Account, booking: Booking) -> bool:
    """Date/guest/proof edits and soft cancellation."""
    return is_admin(principal) or (
        principal.role == Role.USER.value and booking.user_id == principal.id
    )


def can_manage_listing(principal: Account, listing: Listing) -> bool:
    return is_admin(principal) or owns_listing(principal, listing)
