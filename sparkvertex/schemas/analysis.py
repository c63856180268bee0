"""Pydantic schemas for the AI analysis endpoints."""

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

MetadataField = Literal[
    "category",
    "title",
    "description",
    "tech_stack",
    "app_types",
    "prompt",
    "security",
]

ALL_METADATA_FIELDS: tuple[MetadataField, ...] = (
    "category",
    "title",
    "description",
    "tech_stack",
    "app_types",
    "prompt",
    "security",
)

SecurityMode = Literal["basic", "model"]


class AnalyzeRequest(BaseModel):
    """Free-form prompt proxied to the chat model."""

    system_prompt: str | None = Field(
        None,
        description="Optional system message steering the model.",
    )
    user_prompt: str | None = Field(
        None,
        description="User message. Required; missing or empty is rejected with 400.",
    )
    temperature: float = Field(
        0.7,
        ge=0,
        le=2,
        description="Sampling temperature. Values <= 0.3 make the response cacheable.",
    )


class AnalyzeResponse(BaseModel):
    content: str = Field(..., description="Assistant message returned by the model.")
    cached: bool = Field(False, description="True when served from the in-process cache.")


class SecurityReport(BaseModel):
    """Verdict on whether an uploaded app contains obviously malicious code.

    Accepts ``isSafe`` as well, which is how the model answers.
    """

    is_safe: bool = Field(..., validation_alias=AliasChoices("is_safe", "isSafe"))
    risks: list[str] = Field(default_factory=list)
    severity: Literal["low", "medium", "high"] = "low"


class AppMetadataRequest(BaseModel):
    """Single-file HTML app to describe for the gallery."""

    html: str = Field(..., min_length=1, description="Full HTML source of the app.")
    language: Literal["zh", "en"] = Field("zh", description="Language of title/description/prompt.")
    fields: list[MetadataField] | None = Field(
        None,
        description="Subset of fields to compute; all fields when omitted.",
    )
    security_mode: SecurityMode = Field(
        "basic",
        description=(
            "basic: local pattern scan only. model: audit by the chat model, "
            "falling back to the local scan when the model fails."
        ),
    )


class AppMetadataResponse(BaseModel):
    """Only the requested fields are populated."""

    category: str | None = None
    title: str | None = None
    description: str | None = None
    tech_stack: list[str] | None = None
    app_types: list[str] | None = None
    prompt: str | None = Field(None, description="Core prompt that would regenerate a similar app.")
    security: SecurityReport | None = None


class WatermarkRequest(BaseModel):
    html: str = Field(..., min_length=1)


class WatermarkResponse(BaseModel):
    html: str
    watermark_id: str | None = Field(
        None,
        description="Id embedded in the document; the existing one when already watermarked.",
    )
    already_marked: bool = False
