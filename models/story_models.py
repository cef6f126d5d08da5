"""
Story persistence models
"""

from typing import Optional, Union

from pydantic import BaseModel, Field


class StoryDraft(BaseModel):
    """Previewed story the user asked to save"""
    title: str = Field(..., min_length=1, description="Title")
    content: str = Field(..., min_length=1, description="Story body")
    story_type: str = Field(..., description="Story type slug")
    genre: Optional[str] = Field(None, description="Genre")
    description: Optional[str] = Field(None, description="Short synopsis")
    image_url: Optional[str] = Field(None, description="Image URL")
    is_private: Optional[bool] = Field(None, description="Private story; unset means private")


class SaveError(BaseModel):
    message: str
    code: Optional[Union[int, str]] = None


class SaveResult(BaseModel):
    ok: bool
    id: Optional[str] = None
    error: Optional[SaveError] = None

    @classmethod
    def saved(cls, story_id: str) -> "SaveResult":
        return cls(ok=True, id=story_id)

    @classmethod
    def failed(cls, message: str, code: Optional[Union[int, str]] = None) -> "SaveResult":
        return cls(ok=False, error=SaveError(message=message, code=code))
