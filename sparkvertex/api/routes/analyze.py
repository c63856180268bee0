from fastapi import APIRouter, Depends

from sparkvertex.api.dependencies import get_analysis_service, get_app_metadata_service
from sparkvertex.core.auth import AuthenticatedUser, get_current_user
from sparkvertex.core.rate_limit import enforce_ip_rate_limit, require_quota
from sparkvertex.schemas.analysis import (
    AnalyzeRequest,
    AnalyzeResponse,
    AppMetadataRequest,
    AppMetadataResponse,
    WatermarkRequest,
    WatermarkResponse,
)
from sparkvertex.services.analysis_service import AnalysisService
from sparkvertex.services.app_metadata import AppMetadataService
from sparkvertex.utils.watermark import find_watermark_id, inject_watermark, new_watermark_id

router = APIRouter(tags=["Analysis"], dependencies=[Depends(enforce_ip_rate_limit)])

analyze_quota = require_quota("analyze", per_minute=50, per_day=200)
metadata_quota = require_quota("analyze-metadata", per_minute=20, per_day=100)


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(
    body: AnalyzeRequest,
    user: AuthenticatedUser = Depends(analyze_quota),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalyzeResponse:
    """Proxy a prompt to the chat model.

    Requires a Supabase access token. Counted against the ``analyze`` quota
    (50/minute, 200/day).

    Raises:
        ValidationAppError: 400 when user_prompt is missing or too long.
        LLMAppError: 502 when the provider fails.
    """
    return await service.analyze(body)


@router.post("/analyze/app-metadata", response_model=AppMetadataResponse, response_model_exclude_none=True)
async def analyze_app_metadata(
    body: AppMetadataRequest,
    user: AuthenticatedUser = Depends(metadata_quota),
    service: AppMetadataService = Depends(get_app_metadata_service),
) -> AppMetadataResponse:
    """Describe an HTML app: category, title, description, tech stack, types, prompt, security."""
    return await service.analyze(
        body.html,
        language=body.language,
        fields=body.fields,
        security_mode=body.security_mode,
    )


@router.post("/analyze/watermark", response_model=WatermarkResponse)
async def watermark(
    body: WatermarkRequest,
    user: AuthenticatedUser = Depends(get_current_user),
) -> WatermarkResponse:
    """Stamp an app with the SparkVertex certification watermark.

    Already watermarked documents come back unchanged with their existing id.
    """
    existing = find_watermark_id(body.html)
    if existing is not None:
        return WatermarkResponse(html=body.html, watermark_id=existing, already_marked=True)
    watermark_id = new_watermark_id()
    html = inject_watermark(body.html, watermark_id=watermark_id)
    if html == body.html:
        return WatermarkResponse(html=html, already_marked=True)
    return WatermarkResponse(html=html, watermark_id=watermark_id)
