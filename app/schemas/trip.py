from pydantic import BaseModel
from typing import Optional, Union

class TripCreate(BaseModel):
    # loosely typed; validate_trip reports field errors
    origin_text: Optional[str] = None
    destination_text: Optional[str] = None
    departure_timestamp: Optional[str] = None
    available_seats: Optional[Union[int, str]] = None
    price: Optional[Union[float, str]] = None
    description: Optional[str] = None
    route_geojson: Optional[Union[dict, str]] = None
