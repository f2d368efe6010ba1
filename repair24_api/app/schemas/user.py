"""
Pydantic models for user data.

Customers register as ``client``, tradespeople as ``contractor``.
Contractors may also describe the services they offer and where they
are based so that they can be found by the contractor search.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class UserBase(BaseModel):
    email: str = Field(..., examples=["customer@example.com"])
    full_name: Optional[str] = Field(None, examples=["Jane Doe"])
    phone: Optional[str] = Field(None, examples=["+1 555 0100"])


class UserCreate(UserBase):
    """Schema for registering a user.

    ``role`` is limited to the self‑service roles; administrators are
    promoted by a super administrator.  The very first account created
    on an empty database becomes the super administrator.
    """

    password: str = Field(..., min_length=6, examples=["strongpassword"])
    role: Literal["client", "contractor"] = "client"
    services_offered: Optional[List[str]] = Field(None, examples=[["plumbing", "hvac"]])
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class UserLogin(BaseModel):
    email: str
    password: str


class UserRead(UserBase):
    """Schema for reading a user from the API."""

    id: int
    role_id: int
    role: str
    services_offered: Optional[List[str]] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    disabled: bool = False

    model_config = {
        "from_attributes": True,
    }


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
