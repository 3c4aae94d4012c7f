from typing import Optional
import datetime
from pydantic import BaseModel, Field


class Network(BaseModel):
    id: int
    name: str = Field(..., description="Registry key of the network, e.g. ETH")
    chain_id: int
    token_address: Optional[str] = None
    is_native: bool
    symbol: str
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None
