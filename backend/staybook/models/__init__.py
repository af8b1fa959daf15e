from staybook.models.account import Account
from staybook.models.listing import Listing, Property, TourPackage
from staybook.models.booking import Booking

__all__ = ["Account", "Listing", "Property", "TourPackage", "Booking"]
