"""
Plugin content schemas.

Each PluginType has exactly one content model. Authoring validates the
payload against it before a block is stored, and quiz plugins know how to
grade a learner response against their own content.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, StrictBool, StrictInt, model_validator

from app.models.enums import PluginType


class RichTextContent(BaseModel):
    rich_text_state: str = Field(min_length=1)


class NoteCalloutContent(BaseModel):
    note: str = Field(min_length=1)
    variant: Literal["info", "tip", "warning", "danger"] = "info"


class ImageUploadContent(BaseModel):
    file_id: str
    caption: Optional[str] = None


class MediaPlayerContent(BaseModel):
    file_id: str
    autoplay: bool = False
    allow_seek: bool = True


class TrueFalseContent(BaseModel):
    question: str = Field(min_length=1)
    correct_answer: bool
    explanation: Optional[str] = None


class Choice(BaseModel):
    text: str = Field(min_length=1)
    is_correct: bool = False


class MultipleChoiceSingleContent(BaseModel):
    question: str = Field(min_length=1)
    choices: list[Choice] = Field(min_length=2)
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one_correct(self):
        if sum(1 for c in self.choices if c.is_correct) != 1:
            raise ValueError("Exactly one choice must be marked correct")
        return self


class MultipleChoiceMultipleContent(BaseModel):
    question: str = Field(min_length=1)
    choices: list[Choice] = Field(min_length=2)
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def at_least_one_correct(self):
        if not any(c.is_correct for c in self.choices):
            raise ValueError("At least one choice must be marked correct")
        return self


class RevealCard(BaseModel):
    front: str = Field(min_length=1)
    back: str = Field(min_length=1)


class TapToRevealContent(BaseModel):
    title: str
    cards: list[RevealCard] = Field(min_length=1)


class StepByStepRevealContent(BaseModel):
    title: str
    steps: list[str] = Field(min_length=1)


CONTENT_SCHEMAS: dict[PluginType, type[BaseModel]] = {
    PluginType.RICH_TEXT_EDITOR: RichTextContent,
    PluginType.NOTE_CALLOUT: NoteCalloutContent,
    PluginType.IMAGE_UPLOAD: ImageUploadContent,
    PluginType.TRUE_FALSE: TrueFalseContent,
    PluginType.MULTIPLE_CHOICE_SINGLE: MultipleChoiceSingleContent,
    PluginType.MULTIPLE_CHOICE_MULTIPLE: MultipleChoiceMultipleContent,
    PluginType.TAP_TO_REVEAL: TapToRevealContent,
    PluginType.STEP_BY_STEP_REVEAL: StepByStepRevealContent,
    PluginType.VIDEO_PLAYER: MediaPlayerContent,
    PluginType.AUDIO_PLAYER: MediaPlayerContent,
}


class TrueFalseResponse(BaseModel):
    selected: StrictBool


class MultipleChoiceSingleResponse(BaseModel):
    selected: StrictInt = Field(ge=0)


class MultipleChoiceMultipleResponse(BaseModel):
    selected: list[StrictInt]


RESPONSE_SCHEMAS: dict[PluginType, type[BaseModel]] = {
    PluginType.TRUE_FALSE: TrueFalseResponse,
    PluginType.MULTIPLE_CHOICE_SINGLE: MultipleChoiceSingleResponse,
    PluginType.MULTIPLE_CHOICE_MULTIPLE: MultipleChoiceMultipleResponse,
}


def validate_block_content(plugin_type: PluginType, content: dict[str, Any]) -> dict[str, Any]:
    """Validate content for a plugin type and return the normalized payload.

    Raises:
        pydantic.ValidationError: if the content does not match the plugin schema
    """
    model = CONTENT_SCHEMAS[plugin_type]
    return model.model_validate(content).model_dump()


def grade_response(plugin_type: PluginType, content: dict[str, Any], response: dict[str, Any]) -> Optional[bool]:
    """
    Grade a learner response against quiz content.

    Response shapes:
        true_false:               {"selected": bool}
        multiple_choice_single:   {"selected": int}        # choice index
        multiple_choice_multiple: {"selected": [int, ...]}

    Returns None for non-quiz plugins or when the response has no selection.

    Raises:
        pydantic.ValidationError: if the selection has the wrong shape for the plugin
    """
    if not plugin_type.is_quiz or "selected" not in response:
        return None

    selected = RESPONSE_SCHEMAS[plugin_type].model_validate(response).selected
    if plugin_type == PluginType.TRUE_FALSE:
        quiz = TrueFalseContent.model_validate(content)
        return selected == quiz.correct_answer

    if plugin_type == PluginType.MULTIPLE_CHOICE_SINGLE:
        quiz = MultipleChoiceSingleContent.model_validate(content)
        correct = next(i for i, c in enumerate(quiz.choices) if c.is_correct)
        return selected == correct

    quiz = MultipleChoiceMultipleContent.model_validate(content)
    correct = {i for i, c in enumerate(quiz.choices) if c.is_correct}
    return set(selected) == correct
