"""
Generation request/response models
"""

from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StoryType(str, Enum):
    SHORT_STORY = "short-story"
    MOVIE_SUMMARY = "movie-summary"
    TV_COMMERCIAL = "tv-commercial"


class CharacterRole(str, Enum):
    PROTAGONIST = "protagonist"
    ANTAGONIST = "antagonist"
    ALLY = "ally"
    MENTOR = "mentor"
    SUPPORTING = "supporting"
    OTHER = "other"


class Character(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=60, description="Character name")
    role: CharacterRole = Field(..., description="Character role")
    description: str = Field("", max_length=300, description="Short character description")


class ImageMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    type: str
    size: int


class ImageDescriptor(BaseModel):
    """Image attached to the form; only `url` mode reaches the prompt"""
    model_config = ConfigDict(frozen=True)

    mode: Literal["url", "upload"] = "url"
    url: Optional[str] = None
    meta: Optional[ImageMeta] = None


class GenerationPayload(BaseModel):
    """Generation form contents"""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    story_type: StoryType = Field(..., description="Story type slug")
    title: str = Field(..., min_length=1, max_length=120, description="Working title")
    genre: Optional[str] = Field(None, description="Genre")
    tone: Optional[str] = Field(None, description="Tone")
    creativity: float = Field(0.5, description="Creativity, expected 0..1")
    additional_instructions: Optional[str] = Field(None, description="Free-form instructions")
    themes: List[str] = Field(default_factory=list, max_length=10, description="Themes")
    plot_points: List[str] = Field(default_factory=list, description="Plot points")
    characters: List[Character] = Field(default_factory=list, max_length=6, description="Characters")
    image: Optional[ImageDescriptor] = Field(None, description="Image descriptor")
    is_private: bool = Field(True, description="Private story")

    @model_validator(mode="after")
    def _check_plot_points(self):
        for point in self.plot_points:
            if len(point) > 200:
                raise ValueError("plot points must be at most 200 characters")
        return self


class GenerationResult(BaseModel):
    title: str
    content: str
    story_type: str
    genre: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class GenerateError(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: Union[int, str]
    message: str
    retry_after: Optional[int] = Field(None, alias="retryAfter")


class GenerateResponse(BaseModel):
    """Either `data` or `error` is set, never both"""

    ok: bool
    data: Optional[GenerationResult] = None
    error: Optional[GenerateError] = None

    @model_validator(mode="after")
    def _check_variant(self):
        if (self.data is None) == (self.error is None):
            raise ValueError("exactly one of data/error must be set")
        if self.ok != (self.data is not None):
            raise ValueError("ok must match the populated variant")
        return self

    @classmethod
    def success(cls, result: GenerationResult) -> "GenerateResponse":
        return cls(ok=True, data=result)

    @classmethod
    def failure(cls, code: Union[int, str], message: str,
                retry_after: Optional[int] = None) -> "GenerateResponse":
        return cls(ok=False, error=GenerateError(code=code, message=message, retry_after=retry_after))
