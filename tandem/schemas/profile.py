from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

class ProfileUpsert(BaseModel):
    display_name: str = Field(min_length=1, max_length=100)
    about_me: Optional[str] = None
    location_city: Optional[str] = Field(None, max_length=100)
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lon: Optional[float] = Field(None, ge=-180, le=180)
    max_radius_km: Optional[int] = Field(None, ge=0)
    analog_passions: list[str] = Field(default_factory=list, max_length=50)
    digital_delights: list[str] = Field(default_factory=list, max_length=50)
    collaboration_interests: Optional[str] = None
    favorite_food: Optional[str] = Field(None, max_length=100)
    favorite_music: Optional[str] = Field(None, max_length=100)
    match_preferences: Optional[dict] = None

class ProfileResponse(BaseModel):
    user_id: int
    display_name: str
    about_me: Optional[str] = None
    location_city: Optional[str] = None
    location_lat: Optional[float] = None
    location_lon: Optional[float] = None
    max_radius_km: Optional[int] = None
    analog_passions: Optional[list[str]] = None
    digital_delights: Optional[list[str]] = None
    collaboration_interests: Optional[str] = None
    favorite_food: Optional[str] = None
    favorite_music: Optional[str] = None
    match_preferences: Optional[dict] = None
    is_complete: bool

    model_config = {"from_attributes": True}

class PublicProfileResponse(BaseModel):
    user_id: int
    display_name: str
    about_me: Optional[str] = None
    location_city: Optional[str] = None
    analog_passions: Optional[list[str]] = None
    digital_delights: Optional[list[str]] = None
    collaboration_interests: Optional[str] = None
    favorite_food: Optional[str] = None
    favorite_music: Optional[str] = None

    model_config = {"from_attributes": True}
