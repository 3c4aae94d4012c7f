from typing import Optional
import datetime
from pydantic import BaseModel, Field

class Wallet(BaseModel):
    id: int
    address: str = Field(..., description="Case-preserved address of the wallet")
    label: Optional[str] = None
    is_active: bool = True
    created_at: datetime.datetime
    updated_at: datetime.datetime
