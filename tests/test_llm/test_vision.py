"""
Tests for the roof damage analyzer.

Covers provider order (Gemini, then OpenAI), degraded parsing, the
no-provider mock result, image loading, and combined estimates.
"""

from __future__ import annotations

import base64
import json
from typing import Any

import httpx
import pytest

from guardian.exceptions import ProviderError
from guardian.llm.vision import (
    MAX_IMAGE_SIZE_BYTES,
    MOCK_MODEL,
    AnalyzePhotoOptions,
    CostBand,
    CostRange,
    DamageAnalysisResult,
    DamageAnalyzer,
    DamageEstimate,
    DamageTypeDetail,
    build_analysis_prompt,
    generate_combined_estimate,
    load_image_file,
    mock_analysis,
    parse_analysis_response,
)


# ===========================================================================
# Fixtures
# ===========================================================================

REPORT = {
    "hasDamage": True,
    "overallSeverity": "severe",
    "confidenceScore": 140,
    "damageTypes": [
        {
            "type": "hail-impact",
            "severity": "severe",
            "location": "South slope",
            "description": "Dense bruising",
            "estimatedCost": {"low": 3000, "high": 5000},
        },
        {"severity": "minor"},
    ],
    "roofDetails": {"condition": "poor", "roofType": "3-tab asphalt", "visibleLayers": 2},
    "estimate": {
        "repairCost": {"low": 4000, "mid": 6000, "high": 8000},
        "replacementCost": {"low": 14000, "mid": 16000, "high": 19000},
        "recommendation": "full-replacement",
        "estimatedSquares": 28,
    },
    "observations": ["Bruised shingles", None],
    "recommendations": ["File claim"],
    "claimRecommendation": "file",
    "claimJustification": "Storm damage exceeds deductible",
}

IMAGE_B64 = base64.b64encode(b"\x89PNG fake image").decode()


class VisionTransport:
    """Routes Gemini, OpenAI and image-download requests to canned replies."""

    def __init__(
        self,
        gemini: Any = None,
        openai: Any = None,
        gemini_status: int = 200,
        openai_status: int = 200,
    ):
        self.gemini = gemini
        self.openai = openai
        self.gemini_status = gemini_status
        self.openai_status = openai_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            return httpx.Response(
                200, content=b"jpegbytes", headers={"content-type": "image/png; charset=binary"}
            )
        if "generateContent" in request.url.path:
            if self.gemini_status != 200:
                return httpx.Response(self.gemini_status, text="gemini down")
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": self.gemini}]}}]
            })
        if self.openai_status != 200:
            return httpx.Response(self.openai_status, text="openai down")
        return httpx.Response(200, json={"choices": [{"message": {"content": self.openai}}]})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def bodies(self, marker: str) -> list[dict[str, Any]]:
        return [
            json.loads(r.content) for r in self.requests
            if r.method == "POST" and marker in r.url.path
        ]


def _analyzer(transport: VisionTransport, gemini=True, openai=True) -> DamageAnalyzer:
    return DamageAnalyzer(
        gemini_api_key="g-key" if gemini else None,
        openai_api_key="sk" if openai else None,
        photo_delay_seconds=0,
        http_client=transport.client(),
    )


# ===========================================================================
# Test: Parsing
# ===========================================================================

class TestParseAnalysisResponse:

    def test_full_report(self):
        result = parse_analysis_response(json.dumps(REPORT), "gpt-4o", "photo-1")

        assert result.has_damage is True
        assert result.overall_severity == "severe"
        assert result.confidence_score == 100
        assert [d.type for d in result.damage_types] == ["hail-impact"]
        assert result.damage_types[0].estimated_cost.high == 5000
        assert result.roof_details.condition == "poor"
        assert result.roof_details.visible_layers == 2
        assert result.estimate.replacement_cost.high == 19000
        assert result.estimate.recommendation == "full-replacement"
        assert result.estimate.estimated_squares == 28
        assert result.observations == ["Bruised shingles"]
        assert result.claim_recommendation == "file"
        assert result.photo_id == "photo-1"
        assert result.model == "gpt-4o"

    def test_fenced_reply(self):
        text = f"Here you go:\n```json\n{json.dumps(REPORT)}\n```"
        assert parse_analysis_response(text, "m").has_damage is True

    def test_missing_fields_take_defaults(self):
        result = parse_analysis_response('{"overallSeverity": "apocalyptic"}', "m")

        assert result.has_damage is False
        assert result.overall_severity == "none"
        assert result.confidence_score == 50
        assert result.roof_details.condition == "fair"
        assert result.estimate.recommendation == "repair"
        assert result.claim_recommendation == "monitor"

    def test_unparsable_reply_degrades(self):
        result = parse_analysis_response("The roof looks okay to me.", "gemini-2.0-flash-exp")

        assert result.has_damage is False
        assert result.overall_severity == "none"
        assert result.confidence_score == 0
        assert result.raw_analysis == "The roof looks okay to me."
        assert result.estimate.notes == "Unable to parse AI response"
        assert result.model == "gemini-2.0-flash-exp"

    def test_prompt_includes_context(self):
        prompt = build_analysis_prompt("Property: 12 Oak St", "Hail on 5/14")
        assert "Property: 12 Oak St" in prompt
        assert "Additional context: Hail on 5/14" in prompt
        assert '"claimRecommendation"' in prompt


# ===========================================================================
# Test: Analyzer
# ===========================================================================

class TestDamageAnalyzer:

    @pytest.mark.asyncio
    async def test_no_providers_returns_mock(self):
        analyzer = DamageAnalyzer()
        assert not analyzer.has_providers

        result = await analyzer.analyze(IMAGE_B64)

        assert result.model == MOCK_MODEL
        assert result.has_damage is True

    @pytest.mark.asyncio
    async def test_gemini_first(self):
        transport = VisionTransport(gemini=json.dumps(REPORT), openai="{}")
        analyzer = _analyzer(transport)

        result = await analyzer.analyze_photo(
            AnalyzePhotoOptions(photo_base64=IMAGE_B64, photo_id="p1", additional_context="Hail 5/14")
        )

        assert result.model == "gemini-2.0-flash-exp"
        assert result.photo_id == "p1"
        assert transport.bodies("chat/completions") == []
        (body,) = transport.bodies("generateContent")
        assert body["contents"][0]["parts"][0]["inlineData"] == {
            "mimeType": "image/jpeg", "data": IMAGE_B64,
        }
        assert "Hail 5/14" in body["contents"][0]["parts"][1]["text"]
        assert body["generationConfig"]["responseMimeType"] == "application/json"

    @pytest.mark.asyncio
    async def test_falls_through_to_openai(self):
        transport = VisionTransport(openai=json.dumps(REPORT), gemini_status=503)
        analyzer = _analyzer(transport)

        result = await analyzer.analyze(IMAGE_B64)

        assert result.model == "gpt-4o"
        assert result.overall_severity == "severe"
        (body,) = transport.bodies("chat/completions")
        assert body["response_format"] == {"type": "json_object"}
        image_part = body["messages"][0]["content"][0]
        assert image_part["image_url"]["url"] == f"data:image/jpeg;base64,{IMAGE_B64}"

    @pytest.mark.asyncio
    async def test_all_providers_fail_returns_mock(self):
        transport = VisionTransport(gemini_status=500, openai_status=500)
        analyzer = _analyzer(transport)

        result = await analyzer.analyze(IMAGE_B64)

        assert result.model == MOCK_MODEL

    @pytest.mark.asyncio
    async def test_unparsable_reply_does_not_fall_through(self):
        transport = VisionTransport(gemini="I can't tell.", openai=json.dumps(REPORT))
        analyzer = _analyzer(transport)

        result = await analyzer.analyze(IMAGE_B64)

        assert result.model == "gemini-2.0-flash-exp"
        assert result.confidence_score == 0
        assert transport.bodies("chat/completions") == []

    @pytest.mark.asyncio
    async def test_data_uri_media_type(self):
        transport = VisionTransport(gemini=json.dumps(REPORT))
        analyzer = _analyzer(transport, openai=False)

        await analyzer.analyze(f"data:image/webp;base64,{IMAGE_B64}")

        part = transport.bodies("generateContent")[0]["contents"][0]["parts"][0]
        assert part["inlineData"] == {"mimeType": "image/webp", "data": IMAGE_B64}

    @pytest.mark.asyncio
    async def test_photo_url_downloaded(self):
        transport = VisionTransport(gemini=json.dumps(REPORT))
        analyzer = _analyzer(transport, openai=False)

        await analyzer.analyze("https://photos.example/roof.png")

        assert transport.requests[0].method == "GET"
        part = transport.bodies("generateContent")[0]["contents"][0]["parts"][0]
        assert part["inlineData"]["mimeType"] == "image/png"
        assert base64.b64decode(part["inlineData"]["data"]) == b"jpegbytes"

    @pytest.mark.asyncio
    async def test_photo_url_download_failure_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="not found")

        analyzer = DamageAnalyzer(
            gemini_api_key="g", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        with pytest.raises(ProviderError) as exc_info:
            await analyzer.analyze("https://photos.example/missing.jpg")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_local_file(self, tmp_path):
        photo = tmp_path / "north.JPG"
        photo.write_bytes(b"fake-jpeg")
        transport = VisionTransport(gemini=json.dumps(REPORT))
        analyzer = _analyzer(transport, openai=False)

        await analyzer.analyze_photo(AnalyzePhotoOptions(photo_path=str(photo)))

        part = transport.bodies("generateContent")[0]["contents"][0]["parts"][0]
        assert part["inlineData"]["mimeType"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_no_image_raises(self):
        with pytest.raises(ValueError, match="No image provided"):
            await DamageAnalyzer().analyze_photo(AnalyzePhotoOptions())

    @pytest.mark.asyncio
    async def test_multiple_photos_skip_failures(self):
        transport = VisionTransport(gemini=json.dumps(REPORT))
        analyzer = _analyzer(transport, openai=False)

        results = await analyzer.analyze_multiple_photos([
            AnalyzePhotoOptions(photo_base64=IMAGE_B64, photo_id="a"),
            AnalyzePhotoOptions(photo_id="broken"),
            AnalyzePhotoOptions(photo_base64=IMAGE_B64, photo_id="b"),
        ])

        assert [r.photo_id for r in results] == ["a", "b"]


class TestLoadImageFile:

    def test_missing(self, tmp_path):
        with pytest.raises(ValueError, match="Image not found"):
            load_image_file(tmp_path / "nope.png")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "roof.bmp"
        path.write_bytes(b"BM")
        with pytest.raises(ValueError, match="Unsupported image format"):
            load_image_file(path)

    def test_too_large(self, tmp_path):
        path = tmp_path / "huge.png"
        with open(path, "wb") as f:
            f.truncate(MAX_IMAGE_SIZE_BYTES + 1)
        with pytest.raises(ValueError, match="Image too large"):
            load_image_file(path)

    def test_reads_and_encodes(self, tmp_path):
        path = tmp_path / "roof.webp"
        path.write_bytes(b"RIFF")
        data, media_type = load_image_file(path)
        assert base64.b64decode(data) == b"RIFF"
        assert media_type == "image/webp"


# ===========================================================================
# Test: Combined estimate
# ===========================================================================

def _result(photo_id: str, severity: str, damages: list[DamageTypeDetail], has_damage=True):
    base = mock_analysis(photo_id)
    return DamageAnalysisResult(
        id=f"analysis-{photo_id}",
        photo_id=photo_id,
        analyzed_at=base.analyzed_at,
        has_damage=has_damage,
        overall_severity=severity,
        confidence_score=80,
        damage_types=damages,
        estimate=DamageEstimate(replacement_cost=CostBand(low=10000, mid=12000, high=15000)),
    )


class TestCombinedEstimate:

    def test_no_damage(self):
        combined = generate_combined_estimate([_result("a", "none", [], has_damage=False)])
        assert combined.overall_recommendation == "No significant damage detected"
        assert combined.total_repair_high == 0

    def test_deduplicates_by_type_and_location(self):
        hail = DamageTypeDetail(
            type="hail-impact", severity="moderate", location="North",
            description="dents", estimated_cost=CostRange(low=1000, high=2000),
        )
        hail_severe = DamageTypeDetail(
            type="hail-impact", severity="severe", location="North",
            description="deep dents", estimated_cost=CostRange(low=3000, high=4000),
        )
        wind = DamageTypeDetail(
            type="wind-damage", severity="minor", location="Ridge",
            description="lifted tabs", estimated_cost=CostRange(low=200, high=500),
        )

        combined = generate_combined_estimate([
            _result("a", "moderate", [hail, wind]),
            _result("b", "moderate", [hail_severe]),
        ])

        assert combined.total_repair_low == 3200
        assert combined.total_repair_high == 4500
        assert combined.total_replacement_high == 15000
        assert combined.overall_recommendation == "Targeted repairs recommended"
        assert "hail-impact: deep dents (severe)" in combined.damages_summary

    def test_severe_recommends_replacement(self):
        combined = generate_combined_estimate([_result("a", "critical", [])])
        assert combined.overall_recommendation == "Full roof replacement recommended"

    def test_many_damaged_photos(self):
        combined = generate_combined_estimate(
            [_result(str(i), "minor", []) for i in range(3)]
        )
        assert combined.overall_recommendation == "Significant repairs needed"
