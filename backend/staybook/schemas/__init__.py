from staybook.schemas.user import UserCreate, UserResponse, UserLogin, Token
from staybook.schemas.listing import ListingCreate, ListingUpdate, ListingResponse
from staybook.schemas.booking import BookingCreate, BookingUpdate, BookingResponse

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "ListingCreate", "ListingUpdate", "ListingResponse",
    "BookingCreate", "BookingUpdate", "BookingResponse",
]
