from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Movement(ApiModel):
    """Card movement: top-up, purchase or refund."""
    id: int
    card_id: int
    amount: int
    description: str = ""
    movement_type: str
    ts: Optional[datetime] = None


class AuthMovement(ApiModel):
    """Authorisation movement: capture, refund or reversal."""
    id: int
    authorisation_id: int
    amount: int
    description: str = ""
    movement_type: str
    ts: Optional[datetime] = None


class Authorisation(ApiModel):
    id: int
    card_id: int
    vendor_id: int
    amount: int
    description: str = ""
    captured: int = 0
    refunded: int = 0
    reversed: int = 0
    ts: Optional[datetime] = None
    movements: Optional[List[AuthMovement]] = None

    @property
    def capturable(self) -> int:
        """Held amount that can still be captured or reversed."""
        return self.amount - (self.captured + self.reversed)

    @property
    def refundable(self) -> int:
        """Captured amount not yet refunded."""
        return self.captured - self.refunded


class Card(ApiModel):
    id: int
    customer_id: int
    balance: int = 0
    available: int = 0
    ts: Optional[datetime] = None
    movements: Optional[List[Movement]] = None


class Customer(ApiModel):
    id: int = 0
    fullname: str
    cards: Optional[List[Card]] = None


class Vendor(ApiModel):
    id: int = 0
    vendor_name: str
    balance: int = 0
    authorisations: Optional[List[Authorisation]] = None


class CustomerList(ApiModel):
    items: List[Customer]
    offset: int = 0
    total: int


class VendorList(ApiModel):
    items: List[Vendor]
    offset: int = 0
    total: int


# request bodies for the front controller; zero means "not supplied"

class CodeRequest(ApiModel):
    amount: int = 0
    authorisation_id: int = 0
    card_id: int = 0
    vendor_id: int = 0
    description: str = ""


class CodeResponse(ApiModel):
    id: int


class CardRequest(ApiModel):
    id: int = Field(0, description="Customer id the card is issued to")


class CustomerRequest(ApiModel):
    id: int = 0
    fullname: str = ""


class VendorRequest(ApiModel):
    id: int = 0
    vendor_name: str = ""


class ErrorBody(BaseModel):
    message: str
    code: int


class Status(BaseModel):
    release: str
    branch: str
    commit: str
    platform: str
    timestamp: str
