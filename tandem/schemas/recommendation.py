from pydantic import BaseModel
from typing import Optional

class RecommendationIdsResponse(BaseModel):
    recommendations: list[int] = []

class RecommendationItem(BaseModel):
    user_id: int
    score: float
    score_percentage: float
    distance_km: Optional[float] = None

    model_config = {"from_attributes": True}

class RecommendationDetailedResponse(BaseModel):
    recommendations: list[RecommendationItem] = []

class DismissResponse(BaseModel):
    dismissed: bool = True
    created: bool
