# chatprofile/schemas.py

from __future__ import annotations

import copy
from typing import Any, Dict, List, Literal, Type

from pydantic import BaseModel, Field

Score = Field(ge=0, le=100)


class BigFiveScores(BaseModel):
    openness: int = Score
    conscientiousness: int = Score
    extraversion: int = Score
    agreeableness: int = Score
    neuroticism: int = Score


class BigFiveDescriptions(BaseModel):
    openness: str
    conscientiousness: str
    extraversion: str
    agreeableness: str
    neuroticism: str


class BigFiveSchema(BaseModel):
    scores: BigFiveScores
    descriptions: BigFiveDescriptions
    dominant_trait: Literal["openness", "conscientiousness", "extraversion", "agreeableness", "neuroticism"]
    summary: str


class MbtiAxisScores(BaseModel):
    """0-100 per axis; below 50 leans to the first letter (E, S, T, J)."""

    ei: int = Score
    sn: int = Score
    tf: int = Score
    jp: int = Score


class MbtiSchema(BaseModel):
    type: str = Field(description="Four-letter type such as INTJ.")
    axis_scores: MbtiAxisScores
    type_title: str
    description: str
    chatgpt_style: str = Field(description="How this type tends to use ChatGPT.")


class ThinkingScores(BaseModel):
    """0 leans to the first word of each axis, 100 to the second."""

    logical_creative: int = Score
    specialist_generalist: int = Score
    practical_theoretical: int = Score
    independent_collaborative: int = Score


class ThinkingStyleSchema(BaseModel):
    scores: ThinkingScores
    style_name: str
    description: str
    strengths: List[str]
    characteristics: List[str]


class CommunicationAspects(BaseModel):
    question_style: str
    expected_response_format: str
    feedback_tendency: str
    information_processing: str


class CommunicationSchema(BaseModel):
    patterns: CommunicationAspects
    descriptions: CommunicationAspects
    strengths: List[str]
    improvements: List[str]
    best_practices: List[str]


class TopicCategory(BaseModel):
    name: str
    percentage: int = Score
    examples: List[str]


class TopicClassificationSchema(BaseModel):
    categories: List[TopicCategory]
    main_interest: str
    summary: str


class WritingStyleSchema(BaseModel):
    formality: Literal["casual", "neutral", "formal"]
    average_length: Literal["short", "medium", "long"]
    tone: str
    characteristics: List[str]
    summary: str


class PersonalitySummarySchema(BaseModel):
    title: str
    emoji: str
    tagline: str
    description: str
    strengths: List[str]
    growth_points: List[str]
    recommendations: List[str]


class AxisLabelsSchema(BaseModel):
    x_positive: str
    x_negative: str
    y_positive: str
    y_negative: str


def to_strict_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """
    JSON schema of `model` accepted by OpenAI strict structured outputs:
    every object closes `additionalProperties` and lists all properties as required.
    Numeric bounds are dropped since strict mode rejects them; the model still enforces them.
    """
    out = copy.deepcopy(model.model_json_schema())
    _close_objects(out)
    for sub in (out.get("$defs") or {}).values():
        _close_objects(sub)
    return out


def _close_objects(node: Dict[str, Any]) -> None:
    for key in ("minimum", "maximum"):
        node.pop(key, None)
    if node.get("type") == "object":
        props = node.setdefault("properties", {})
        node["additionalProperties"] = False
        node["required"] = list(props.keys())
        for sub in props.values():
            _close_objects(sub)
    items = node.get("items")
    if isinstance(items, dict):
        _close_objects(items)
