from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from errors import MalformedLessonError


class KeyStage(str, Enum):
    KS1 = "ks1"
    KS2 = "ks2"


class SlideType(str, Enum):
    STARTER = "starter"
    MAIN = "main"
    ACTIVITY = "activity"
    ASSESSMENT = "assessment"
    PLENARY = "plenary"


class _Model(BaseModel):
    # Accept both the camelCase wire names and the python field names.
    model_config = ConfigDict(populate_by_name=True)


# ---- Slides ------------------------------------------------------------------

class SlideSpec(_Model):
    title: str = Field(default="", description="Slide title")
    content: str = Field(default="", description="Bullet list or paragraph text")
    type: str = Field(default=SlideType.MAIN.value, description="starter|main|activity|assessment|plenary")
    notes: Optional[str] = Field(default=None, description="Teacher note shown in the footer band")
    image_suggestions: List[str] = Field(default_factory=list, alias="imageSuggestions")
    selected_images: Optional[List[str]] = Field(default=None, alias="selectedImages")

    @field_validator("content", mode="before")
    @classmethod
    def _content_as_text(cls, v):
        if v is None:
            return ""
        if isinstance(v, (list, tuple)):
            return "\n".join(f"- {str(item).strip()}" for item in v if str(item).strip())
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, v):
        return (v or SlideType.MAIN.value).strip().lower() if isinstance(v, str) else SlideType.MAIN.value

    @property
    def slide_type(self) -> Optional[SlideType]:
        try:
            return SlideType(self.type)
        except ValueError:
            return None


# ---- Worksheet activities ----------------------------------------------------

class VisualFormat(_Model):
    type: str = Field(default="", description="Visual-format tag, e.g. grid, timeline")
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _data_or_empty(cls, v):
        return v if isinstance(v, dict) else {}


class ActivityImage(_Model):
    description: str
    placement: Optional[str] = None


class ActivityItem(_Model):
    title: str = Field(default="")
    instructions: str = Field(default="")
    content_text: Optional[str] = Field(default=None, alias="contentText",
                                        description="150-300 word standalone passage")
    table_questions: List[str] = Field(default_factory=list, alias="tableQuestions")
    gap_fill_questions: List[str] = Field(default_factory=list, alias="gapFillQuestions")
    open_questions: List[str] = Field(default_factory=list, alias="openQuestions")
    visual_format: Optional[VisualFormat] = Field(default=None, alias="visualFormat")
    images: Optional[List[ActivityImage]] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")

    @model_validator(mode="before")
    @classmethod
    def _legacy_content_field(cls, values):
        # Older lesson templates put the passage under "content".
        if isinstance(values, dict) and "content" in values \
                and not values.get("contentText") and not values.get("content_text"):
            values = dict(values)
            values["contentText"] = values.pop("content")
        return values


class ResourceContent(_Model):
    description: str = Field(default="")
    items: List[ActivityItem] = Field(default_factory=list)


class Differentiation(_Model):
    support: Optional[str] = None
    stretch: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.support or "").strip() and not (self.stretch or "").strip()


# ---- Lesson ------------------------------------------------------------------

class LessonContent(_Model):
    title: str = Field(default="", description="Lesson title")
    learning_question: Optional[str] = Field(default=None, alias="learningQuestion")
    subject: str = Field(default="general")
    key_stage: KeyStage = Field(default=KeyStage.KS2, alias="keyStage")
    objectives: List[str] = Field(default_factory=list)
    slides: List[SlideSpec] = Field(..., description="One entry per content slide")
    resources: List[str] = Field(default_factory=list)
    resource_content: Optional[ResourceContent] = Field(default=None, alias="resourceContent")
    differentiation: Optional[Differentiation] = None

    @field_validator("key_stage", mode="before")
    @classmethod
    def _normalise_key_stage(cls, v):
        if v is None or v == "":
            return KeyStage.KS2
        if isinstance(v, str):
            return v.replace(" ", "").strip().lower()
        return v

    @field_validator("subject", mode="before")
    @classmethod
    def _subject_or_general(cls, v):
        return v or "general"

    @field_validator("objectives", "resources", mode="before")
    @classmethod
    def _drop_blank_strings(cls, v):
        if v is None:
            return []
        return [s for s in v if isinstance(s, str) and s.strip()] if isinstance(v, list) else v


def coerce_lesson(lesson: Any) -> LessonContent:
    """Validate raw input into a LessonContent, failing before any rendering."""
    if isinstance(lesson, LessonContent):
        return lesson
    if not isinstance(lesson, Mapping):
        raise MalformedLessonError(f"lesson must be an object, got {type(lesson).__name__}")
    try:
        return LessonContent.model_validate(dict(lesson))
    except ValidationError as e:
        raise MalformedLessonError(f"invalid lesson content: {e}") from e
