"""
Answer payloads for feedback responses.

Each question type has exactly one payload shape. The payloads form a
discriminated union keyed by ``question_type`` so code that handles a
specific question type receives the concrete variant, never a generic dict.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from common_core.domain_enums import FeedbackQuestionType
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _ResponseDetailsBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class TextResponseDetails(_ResponseDetailsBase):
    question_type: Literal[FeedbackQuestionType.TEXT] = FeedbackQuestionType.TEXT
    answer: str


class McqResponseDetails(_ResponseDetailsBase):
    question_type: Literal[FeedbackQuestionType.MCQ] = FeedbackQuestionType.MCQ
    answer: str
    is_other: bool = False


class MsqResponseDetails(_ResponseDetailsBase):
    question_type: Literal[FeedbackQuestionType.MSQ] = FeedbackQuestionType.MSQ
    answers: list[str] = Field(default_factory=list)


class NumericalScaleResponseDetails(_ResponseDetailsBase):
    question_type: Literal[FeedbackQuestionType.NUMSCALE] = FeedbackQuestionType.NUMSCALE
    answer: float


class RankOptionsResponseDetails(_ResponseDetailsBase):
    question_type: Literal[FeedbackQuestionType.RANK_OPTIONS] = FeedbackQuestionType.RANK_OPTIONS
    answers: list[int] = Field(default_factory=list)


class RankRecipientsResponseDetails(_ResponseDetailsBase):
    """A single rank given to one recipient. Ranks start at 1."""

    question_type: Literal[FeedbackQuestionType.RANK_RECIPIENTS] = (
        FeedbackQuestionType.RANK_RECIPIENTS
    )
    answer: int


ResponseDetails = Annotated[
    Union[
        TextResponseDetails,
        McqResponseDetails,
        MsqResponseDetails,
        NumericalScaleResponseDetails,
        RankOptionsResponseDetails,
        RankRecipientsResponseDetails,
    ],
    Field(discriminator="question_type"),
]

response_details_adapter: TypeAdapter[ResponseDetails] = TypeAdapter(ResponseDetails)


def parse_response_details(raw: dict) -> ResponseDetails:
    """Parse a stored answer payload into its typed variant."""
    return response_details_adapter.validate_python(raw)
