"""
Vision Module — roof damage analysis from photos.

Sends a roof photo plus a fixed, schema-constrained prompt to a vision
model and parses the JSON damage report into DamageAnalysisResult.
Narrower than a chat adapter: no streaming, no tool calls.

Providers are tried in a fixed order: Gemini vision, then OpenAI GPT-4o.
A provider that fails (HTTP error, timeout, transport) is logged and the
next one is tried. A reply that does not parse is NOT a failure: it
yields a degraded result with the raw text kept. With no credentials at
all, or when every provider fails, an illustrative result with
model == "mock" is returned.

Usage:
    from guardian.llm.vision import DamageAnalyzer, AnalyzePhotoOptions

    analyzer = DamageAnalyzer(gemini_api_key=os.environ["GOOGLE_API_KEY"])

    result = await analyzer.analyze("https://example.com/roof.jpg", "Hail on 5/14")
    print(result.overall_severity, result.estimate.recommendation)

    results = await analyzer.analyze_multiple_photos([
        AnalyzePhotoOptions(photo_path="north.jpg"),
        AnalyzePhotoOptions(photo_path="south.jpg"),
    ])
    combined = generate_combined_estimate(results)
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import httpx

from guardian.exceptions import (
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
)
from guardian.llm.adapters.base import (
    DEFAULT_TIMEOUT_SECONDS,
    HTTPCall,
    open_client,
    post_json,
    provider_error,
    translate_transport_errors,
)
from guardian.llm.llm_config import GEMINI_FLASH, GPT_4O
from guardian.llm.parsing import loads_lenient

logger = logging.getLogger(__name__)

# Supported image formats for local files
SUPPORTED_FORMATS = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
}

# Max file size for vision (20MB)
MAX_IMAGE_SIZE_BYTES = 20 * 1024 * 1024

DEFAULT_MEDIA_TYPE = "image/jpeg"
MOCK_MODEL = "mock"

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_BASE_URL = "https://api.openai.com/v1"

SEVERITIES = ("none", "minor", "moderate", "severe", "critical")
DAMAGE_SEVERITIES = ("minor", "moderate", "severe")
ROOF_CONDITIONS = ("excellent", "good", "fair", "poor")
ESTIMATE_RECOMMENDATIONS = ("repair", "partial-replacement", "full-replacement")
CLAIM_RECOMMENDATIONS = ("file", "monitor", "not-recommended")

_DATA_URI = re.compile(r"^data:(image/[\w.+-]+);base64,")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CostRange:
    low: float = 0.0
    high: float = 0.0


@dataclass
class CostBand:
    low: float = 0.0
    mid: float = 0.0
    high: float = 0.0


@dataclass
class DamageTypeDetail:
    """One kind of damage seen in the photo."""

    type: str
    severity: str
    location: str = ""
    description: str = ""
    affected_area: str = ""
    repair_method: str = ""
    estimated_cost: CostRange = field(default_factory=CostRange)


@dataclass
class RoofDetails:
    condition: str = "fair"
    roof_type: Optional[str] = None
    estimated_age: Optional[str] = None
    pitch: Optional[str] = None
    visible_layers: Optional[int] = None
    color: Optional[str] = None


@dataclass
class DamageEstimate:
    repair_cost: CostBand = field(default_factory=CostBand)
    replacement_cost: CostBand = field(default_factory=CostBand)
    recommendation: str = "repair"
    estimated_squares: Optional[float] = None
    notes: str = ""


@dataclass
class DamageAnalysisResult:
    """Structured damage report for one photo."""

    id: str
    photo_id: str
    analyzed_at: datetime
    has_damage: bool
    overall_severity: str
    confidence_score: float  # 0-100
    damage_types: list[DamageTypeDetail] = field(default_factory=list)
    roof_details: RoofDetails = field(default_factory=RoofDetails)
    estimate: DamageEstimate = field(default_factory=DamageEstimate)
    observations: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    claim_recommendation: str = "monitor"
    claim_justification: str = ""
    raw_analysis: Optional[str] = None
    model: str = ""


@dataclass
class AnalyzePhotoOptions:
    """Where the photo comes from, plus optional text context."""

    photo_url: Optional[str] = None
    photo_base64: Optional[str] = None
    photo_path: Optional[str] = None
    photo_id: Optional[str] = None
    property_context: str = ""
    additional_context: Optional[str] = None


@dataclass
class CombinedEstimate:
    total_repair_low: float = 0.0
    total_repair_high: float = 0.0
    total_replacement_low: float = 0.0
    total_replacement_high: float = 0.0
    overall_recommendation: str = "No significant damage detected"
    damages_summary: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

ANALYSIS_SCHEMA = """{
  "hasDamage": boolean,
  "overallSeverity": "none" | "minor" | "moderate" | "severe" | "critical",
  "confidenceScore": number (0-100),
  "damageTypes": [
    {
      "type": "hail-impact" | "wind-damage" | "missing-shingles" | "cracked-shingles" | "curling-shingles" | "granule-loss" | "punctures" | "debris-damage" | "flashing-damage" | "gutter-damage" | "soffit-damage" | "vent-damage" | "chimney-damage" | "skylight-damage" | "wear-and-tear" | "moss-algae" | "water-damage" | "structural" | "other",
      "severity": "minor" | "moderate" | "severe",
      "location": "string describing where on the roof",
      "description": "detailed description of the damage",
      "affectedArea": "approximate area affected",
      "repairMethod": "recommended repair approach",
      "estimatedCost": { "low": number, "high": number }
    }
  ],
  "roofDetails": {
    "roofType": "string or null",
    "estimatedAge": "string or null",
    "pitch": "string or null",
    "condition": "excellent" | "good" | "fair" | "poor",
    "color": "string or null"
  },
  "estimate": {
    "repairCost": { "low": number, "mid": number, "high": number },
    "replacementCost": { "low": number, "mid": number, "high": number },
    "recommendation": "repair" | "partial-replacement" | "full-replacement",
    "estimatedSquares": number or null,
    "notes": "string with important cost considerations"
  },
  "observations": ["array of specific observations from the image"],
  "recommendations": ["array of action recommendations"],
  "claimRecommendation": "file" | "monitor" | "not-recommended",
  "claimJustification": "string explaining the claim recommendation"
}"""

ANALYSIS_GUIDELINES = """Important guidelines:
- Be thorough but accurate. Don't overstate damage.
- If image quality is poor or you can't see clearly, reduce confidence score.
- Use realistic cost estimates for the US market (labor + materials).
- Hail impacts show as circular dents/bruises on shingles.
- Wind damage shows as lifted, creased, or missing shingles.
- Consider roof age in your assessment.
- If this is not a roof image or you cannot assess damage, set hasDamage to false and explain in observations."""


def build_analysis_prompt(property_context: str = "", additional_context: Optional[str] = None) -> str:
    extra = f"Additional context: {additional_context}" if additional_context else ""
    return (
        "You are an expert roof damage assessor for insurance claims. "
        "Analyze this roof photo and provide a detailed damage assessment.\n\n"
        f"{property_context}\n{extra}\n\n"
        "Analyze the image and return a JSON response with this exact structure:\n"
        f"{ANALYSIS_SCHEMA}\n\n"
        f"{ANALYSIS_GUIDELINES}"
    )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _number(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    return value if value in allowed else default


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _cost_band(raw: Any) -> CostBand:
    raw = _dict(raw)
    return CostBand(
        low=_number(raw.get("low")),
        mid=_number(raw.get("mid")),
        high=_number(raw.get("high")),
    )


def _damage_type(raw: Any) -> Optional[DamageTypeDetail]:
    raw = _dict(raw)
    if not raw.get("type"):
        return None
    cost = _dict(raw.get("estimatedCost"))
    return DamageTypeDetail(
        type=str(raw["type"]),
        severity=_choice(raw.get("severity"), DAMAGE_SEVERITIES, "minor"),
        location=str(raw.get("location") or ""),
        description=str(raw.get("description") or ""),
        affected_area=str(raw.get("affectedArea") or ""),
        repair_method=str(raw.get("repairMethod") or ""),
        estimated_cost=CostRange(low=_number(cost.get("low")), high=_number(cost.get("high"))),
    )


def _new_analysis_id() -> str:
    return f"analysis-{uuid.uuid4().hex[:12]}"


def degraded_analysis(text: str, model: str, photo_id: str = "unknown") -> DamageAnalysisResult:
    """Result for a reply that could not be parsed; raw text is kept."""
    return DamageAnalysisResult(
        id=_new_analysis_id(),
        photo_id=photo_id,
        analyzed_at=datetime.now(timezone.utc),
        has_damage=False,
        overall_severity="none",
        confidence_score=0,
        damage_types=[],
        roof_details=RoofDetails(condition="fair"),
        estimate=DamageEstimate(notes="Unable to parse AI response"),
        observations=["AI analysis returned unexpected format", (text or "")[:200]],
        recommendations=["Please try again with a clearer image"],
        claim_recommendation="monitor",
        claim_justification="Unable to complete analysis",
        raw_analysis=text,
        model=model,
    )


def parse_analysis_response(text: str, model: str, photo_id: str = "unknown") -> DamageAnalysisResult:
    """
    Parse a model reply into a DamageAnalysisResult.

    Markdown fences are stripped. Missing fields take defaults; a reply
    that is not a JSON object degrades instead of raising.
    """
    parsed = loads_lenient(text)
    if not isinstance(parsed, dict):
        logger.warning(
            "damage_analysis_unparsable",
            extra={"model": model, "preview": (text or "")[:120]},
        )
        return degraded_analysis(text, model, photo_id)

    roof = _dict(parsed.get("roofDetails"))
    estimate = _dict(parsed.get("estimate"))
    layers = roof.get("visibleLayers")

    return DamageAnalysisResult(
        id=_new_analysis_id(),
        photo_id=photo_id,
        analyzed_at=datetime.now(timezone.utc),
        has_damage=bool(parsed.get("hasDamage", False)),
        overall_severity=_choice(parsed.get("overallSeverity"), SEVERITIES, "none"),
        confidence_score=min(max(_number(parsed.get("confidenceScore"), 50.0), 0.0), 100.0),
        damage_types=[
            d for d in (_damage_type(raw) for raw in parsed.get("damageTypes") or []) if d
        ],
        roof_details=RoofDetails(
            condition=_choice(roof.get("condition"), ROOF_CONDITIONS, "fair"),
            roof_type=_optional_str(roof.get("roofType")),
            estimated_age=_optional_str(roof.get("estimatedAge")),
            pitch=_optional_str(roof.get("pitch")),
            visible_layers=int(layers) if isinstance(layers, (int, float)) and not isinstance(layers, bool) else None,
            color=_optional_str(roof.get("color")),
        ),
        estimate=DamageEstimate(
            repair_cost=_cost_band(estimate.get("repairCost")),
            replacement_cost=_cost_band(estimate.get("replacementCost")),
            recommendation=_choice(estimate.get("recommendation"), ESTIMATE_RECOMMENDATIONS, "repair"),
            estimated_squares=(
                _number(estimate["estimatedSquares"])
                if estimate.get("estimatedSquares") is not None else None
            ),
            notes=str(estimate.get("notes") or ""),
        ),
        observations=_strings(parsed.get("observations")),
        recommendations=_strings(parsed.get("recommendations")),
        claim_recommendation=_choice(
            parsed.get("claimRecommendation"), CLAIM_RECOMMENDATIONS, "monitor"
        ),
        claim_justification=str(parsed.get("claimJustification") or ""),
        raw_analysis=text,
        model=model,
    )


def mock_analysis(photo_id: str = "unknown") -> DamageAnalysisResult:
    """Fixed illustrative result used when no vision provider is available."""
    return DamageAnalysisResult(
        id=f"analysis-mock-{uuid.uuid4().hex[:12]}",
        photo_id=photo_id,
        analyzed_at=datetime.now(timezone.utc),
        has_damage=True,
        overall_severity="moderate",
        confidence_score=85,
        damage_types=[
            DamageTypeDetail(
                type="hail-impact",
                severity="moderate",
                location="North-facing slope",
                description=(
                    "Multiple circular impact marks consistent with 1-1.5 inch hail. "
                    "Granule displacement visible around impact points."
                ),
                affected_area="~150 sq ft",
                repair_method="Full shingle replacement in affected area",
                estimated_cost=CostRange(low=2500, high=4000),
            ),
            DamageTypeDetail(
                type="granule-loss",
                severity="minor",
                location="Ridge line and valleys",
                description=(
                    "Moderate granule loss indicating age-related wear "
                    "accelerated by storm damage."
                ),
                affected_area="~50 sq ft",
                repair_method="Include in shingle replacement",
                estimated_cost=CostRange(low=500, high=800),
            ),
        ],
        roof_details=RoofDetails(
            condition="fair",
            roof_type="Architectural asphalt shingle",
            estimated_age="12-15 years",
            pitch="6/12",
            color="Weathered wood",
        ),
        estimate=DamageEstimate(
            repair_cost=CostBand(low=3500, mid=5000, high=6500),
            replacement_cost=CostBand(low=12000, mid=15000, high=18000),
            recommendation="partial-replacement",
            estimated_squares=25,
            notes=(
                "Partial replacement recommended for storm-damaged sections. "
                "Consider full replacement if claim is approved given roof age."
            ),
        ),
        observations=[
            "Multiple hail impacts visible on 3-tab shingles",
            "Granule accumulation visible in gutters",
            "No visible structural damage",
            "Flashing appears intact",
            "Some pre-existing wear consistent with roof age",
        ],
        recommendations=[
            "Document all visible damage with close-up photos",
            "Check for interior water damage",
            "File insurance claim promptly",
            "Get multiple contractor estimates",
            "Consider upgrading to impact-resistant shingles",
        ],
        claim_recommendation="file",
        claim_justification=(
            "Clear storm damage visible with multiple hail impacts. Damage appears "
            "to exceed deductible threshold and is consistent with recent storm "
            "activity in the area."
        ),
        model=MOCK_MODEL,
    )


# ---------------------------------------------------------------------------
# Combined estimate
# ---------------------------------------------------------------------------

def generate_combined_estimate(analyses: list[DamageAnalysisResult]) -> CombinedEstimate:
    """
    Merge per-photo analyses into one estimate.

    Damage is deduplicated by type + location (a severe sighting wins),
    repair ranges are summed, and replacement ranges take the maximum.
    """
    with_damage = [a for a in analyses if a.has_damage]
    if not with_damage:
        return CombinedEstimate()

    unique: dict[str, DamageTypeDetail] = {}
    for analysis in with_damage:
        for damage in analysis.damage_types:
            key = f"{damage.type}-{damage.location}"
            if key not in unique or damage.severity == "severe":
                unique[key] = damage

    severe = [a for a in with_damage if a.overall_severity in ("severe", "critical")]
    if severe:
        recommendation = "Full roof replacement recommended"
    elif len(with_damage) > 2:
        recommendation = "Significant repairs needed"
    else:
        recommendation = "Targeted repairs recommended"

    return CombinedEstimate(
        total_repair_low=sum(d.estimated_cost.low for d in unique.values()),
        total_repair_high=sum(d.estimated_cost.high for d in unique.values()),
        total_replacement_low=max(a.estimate.replacement_cost.low for a in with_damage),
        total_replacement_high=max(a.estimate.replacement_cost.high for a in with_damage),
        overall_recommendation=recommendation,
        damages_summary=[
            f"{d.type}: {d.description} ({d.severity})" for d in unique.values()
        ],
    )


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class DamageAnalyzer:
    """
    Roof damage analysis against Gemini vision, then OpenAI GPT-4o.

    Holds only credentials and settings; safe to share across tasks.
    """

    def __init__(
        self,
        *,
        gemini_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        photo_delay_seconds: float = 0.5,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._gemini_key = gemini_api_key
        self._openai_key = openai_api_key
        self.timeout = timeout
        self.photo_delay_seconds = photo_delay_seconds
        self._http_client = http_client

    @property
    def has_providers(self) -> bool:
        return bool(self._gemini_key or self._openai_key)

    async def analyze(self, image: str, text_context: str = "") -> DamageAnalysisResult:
        """Analyze an image URL or base64 string (a data: URI is fine)."""
        if image.startswith(("http://", "https://")):
            options = AnalyzePhotoOptions(photo_url=image, additional_context=text_context or None)
        else:
            options = AnalyzePhotoOptions(photo_base64=image, additional_context=text_context or None)
        return await self.analyze_photo(options)

    async def analyze_photo(self, options: AnalyzePhotoOptions) -> DamageAnalysisResult:
        """
        Analyze one photo for roof damage.

        Raises:
            ValueError: No image source given, or an unusable local file.
            ProviderError / ProviderConnectionError / ProviderTimeoutError:
                The photo URL could not be downloaded.
        """
        image_data, media_type = await self._load_image(options)
        photo_id = options.photo_id or "unknown"
        prompt = build_analysis_prompt(options.property_context, options.additional_context)

        attempts = []
        if self._gemini_key:
            attempts.append((GEMINI_FLASH.model_id, self._analyze_with_gemini))
        if self._openai_key:
            attempts.append((GPT_4O.model_id, self._analyze_with_openai))

        for model, attempt in attempts:
            try:
                text = await attempt(image_data, media_type, prompt)
            except (ProviderError, ProviderTimeoutError, ProviderConnectionError) as e:
                logger.error(
                    "damage_analysis_provider_failed",
                    extra={"model": model, "error": str(e)[:200]},
                )
                continue

            result = parse_analysis_response(text, model, photo_id)
            logger.info(
                "damage_analysis_complete",
                extra={
                    "model": model,
                    "photo_id": photo_id,
                    "has_damage": result.has_damage,
                    "severity": result.overall_severity,
                },
            )
            return result

        logger.warning(
            "damage_analysis_mock_used",
            extra={"photo_id": photo_id, "providers_tried": len(attempts)},
        )
        return mock_analysis(photo_id)

    async def analyze_multiple_photos(
        self, photos: list[AnalyzePhotoOptions]
    ) -> list[DamageAnalysisResult]:
        """Analyze photos one at a time with a pause between requests; failures are skipped."""
        results: list[DamageAnalysisResult] = []
        for index, options in enumerate(photos):
            try:
                results.append(await self.analyze_photo(options))
            except (ValueError, ProviderError, ProviderTimeoutError, ProviderConnectionError) as e:
                logger.error(
                    "damage_analysis_photo_failed",
                    extra={"photo_id": options.photo_id, "error": str(e)[:200]},
                )
            if index < len(photos) - 1 and self.photo_delay_seconds > 0:
                await asyncio.sleep(self.photo_delay_seconds)
        return results

    # --- Image loading ---

    async def _load_image(self, options: AnalyzePhotoOptions) -> tuple[str, str]:
        if options.photo_base64:
            match = _DATA_URI.match(options.photo_base64)
            if match:
                return options.photo_base64[match.end():], match.group(1)
            return options.photo_base64, DEFAULT_MEDIA_TYPE

        if options.photo_url:
            return await self._download_image(options.photo_url)

        if options.photo_path:
            return load_image_file(options.photo_path)

        raise ValueError("No image provided: set photo_url, photo_base64 or photo_path")

    async def _download_image(self, url: str) -> tuple[str, str]:
        logger.info("damage_downloading_image", extra={"url": url[:100]})
        async with open_client(self._http_client, self.timeout) as client:
            with translate_transport_errors("image", self.timeout):
                resp = await asyncio.wait_for(client.get(url, timeout=self.timeout), self.timeout)
        if not resp.is_success:
            raise provider_error(resp, "image")

        content_type = resp.headers.get("content-type", DEFAULT_MEDIA_TYPE)
        media_type = content_type.split(";")[0].strip() or DEFAULT_MEDIA_TYPE
        return base64.b64encode(resp.content).decode("utf-8"), media_type

    # --- Providers ---

    async def _post(self, call: HTTPCall, provider: str) -> dict[str, Any]:
        async with open_client(self._http_client, self.timeout) as client:
            return await post_json(client, call, provider=provider, timeout=self.timeout)

    async def _analyze_with_gemini(self, image_data: str, media_type: str, prompt: str) -> str:
        call = HTTPCall(
            url=f"{GEMINI_BASE_URL}/models/{GEMINI_FLASH.api_model}:generateContent",
            body={
                "contents": [
                    {
                        "parts": [
                            {"inlineData": {"mimeType": media_type, "data": image_data}},
                            {"text": prompt},
                        ]
                    }
                ],
                "generationConfig": {
                    "temperature": 0.3,
                    "maxOutputTokens": 4096,
                    "responseMimeType": "application/json",
                },
            },
            headers={"Content-Type": "application/json"},
            params={"key": self._gemini_key or ""},
        )
        data = await self._post(call, "google")
        candidates = data.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if "text" in part)

    async def _analyze_with_openai(self, image_data: str, media_type: str, prompt: str) -> str:
        call = HTTPCall(
            url=f"{OPENAI_BASE_URL}/chat/completions",
            body={
                "model": GPT_4O.api_model,
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{media_type};base64,{image_data}"},
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
                "max_tokens": 4096,
                "temperature": 0.3,
                "response_format": {"type": "json_object"},
            },
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._openai_key}",
            },
        )
        data = await self._post(call, "openai")
        choices = data.get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""


def load_image_file(image_path: str | Path) -> tuple[str, str]:
    """
    Read and base64-encode a local image.

    Raises:
        ValueError: If the file is missing, unsupported or too large.
    """
    path = Path(image_path)
    if not path.exists():
        raise ValueError(f"Image not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        raise ValueError(
            f"Unsupported image format: {suffix}. "
            f"Supported: {', '.join(SUPPORTED_FORMATS.keys())}"
        )

    file_size = path.stat().st_size
    if file_size > MAX_IMAGE_SIZE_BYTES:
        raise ValueError(
            f"Image too large: {file_size / 1024 / 1024:.1f}MB "
            f"(max: {MAX_IMAGE_SIZE_BYTES / 1024 / 1024:.0f}MB)"
        )

    return base64.b64encode(path.read_bytes()).decode("utf-8"), SUPPORTED_FORMATS[suffix]
