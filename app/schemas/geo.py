from pydantic import BaseModel
from typing import Optional

class GeocodeRequest(BaseModel):
    address: Optional[str] = None
    limit: int = 1

class RouteRequest(BaseModel):
    origin: Optional[dict] = None
    destination: Optional[dict] = None
