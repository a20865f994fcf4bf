from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """Account as far as billing cares: its id and when it was created."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    created_at: Optional[datetime] = None
