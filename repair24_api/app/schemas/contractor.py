"""
Pydantic models for contractor search results.

Results come from two sources: contractors registered on the platform
(``source == "directory"``) and nearby businesses found through Google
Places (``source == "google_places"``).  The identifier is a string
because Places ids are not integers.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel


class ContractorResult(BaseModel):
    id: str
    name: str
    source: Literal["directory", "google_places"] = "directory"
    address: Optional[str] = None
    phone: Optional[str] = None
    latitude: float
    longitude: float
    services_offered: List[str] = []
    rating: Optional[float] = None
    distance_km: float
