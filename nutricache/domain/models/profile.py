from pydantic import BaseModel, Field
from typing import Optional, List


class UserProfile(BaseModel):
    """Profile fields the chat widget collects; only what clustering needs."""
    age: Optional[int] = Field(default=None, ge=1, le=120)
    weight: Optional[float] = Field(default=None, gt=0)   # kg
    goals: List[str] = []
    conditions: List[str] = []   # free-text health entries (allergies, conditions, diet notes)
    diet: Optional[str] = None


class ProfileCluster(BaseModel):
    age_band: str
    weight_band: str
    primary_goal: str
    medical_conditions: List[str] = []   # sorted, canonical tags
    diet: Optional[str] = None

    model_config = {"frozen": True}
