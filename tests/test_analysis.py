"""
AnalysisGateway: parsing and the fallback guarantees.
"""

import asyncio
from types import SimpleNamespace

import pytest

from conftest import make_analysis, make_business, make_competitors
from models.schemas import AnalysisResult
from services.analysis import (
    AnalysisGateway,
    build_prompt,
    fallback_analysis,
    no_competitor_analysis,
    parse_analysis,
)


class FakeMessages:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.text)])


def _gateway(text=None, error=None):
    messages = FakeMessages(text=text, error=error)
    return AnalysisGateway(client=SimpleNamespace(messages=messages)), messages


def _analyze(gateway, competitors=None, language="en", plan=None):
    competitors = make_competitors() if competitors is None else competitors
    return asyncio.run(gateway.analyze(make_business(), competitors, language, plan))


VALID_JSON = make_analysis("Model summary").model_dump_json()


# ─── Success path ────────────────────────────────────────────────────────────

class TestModelOutput:
    def test_valid_json_is_returned(self):
        gateway, messages = _gateway(text=VALID_JSON)
        result = _analyze(gateway)
        assert result.executive_summary == "Model summary"
        assert len(messages.calls) == 1
        assert messages.calls[0]["model"] == gateway.model

    def test_code_fences_are_tolerated(self):
        gateway, _ = _gateway(text=f"```json\n{VALID_JSON}\n```")
        assert _analyze(gateway).executive_summary == "Model summary"

    def test_parse_rejects_empty(self):
        with pytest.raises(ValueError):
            parse_analysis("   ")


# ─── Fallbacks ───────────────────────────────────────────────────────────────

class TestFallbacks:
    @pytest.mark.parametrize("text", [
        "",
        "Sorry, I cannot help with that.",
        '{"executive_summary": "x", "swot": ',
        '{"executive_summary": "only a summary"}',
        '{"executive_summary": "", "swot": {}}',
    ])
    def test_bad_output_falls_back(self, text):
        gateway, _ = _gateway(text=text)
        result = _analyze(gateway)
        assert isinstance(result, AnalysisResult)
        assert "3 competitor(s)" in result.executive_summary

    def test_network_error_falls_back(self):
        gateway, _ = _gateway(error=ConnectionError("network down"))
        result = _analyze(gateway)
        assert isinstance(result, AnalysisResult)
        assert result.swot.strengths

    def test_unconfigured_falls_back_without_client(self):
        gateway = AnalysisGateway()
        assert not gateway.configured
        result = _analyze(gateway)
        assert "Tasca do Bairro" in result.executive_summary

    def test_empty_competitors_skip_model_call(self):
        gateway, messages = _gateway(text=VALID_JSON)
        result = _analyze(gateway, competitors=[])
        assert messages.calls == []
        assert "no direct competitors" in " ".join(result.swot.strengths).lower()

    def test_no_competitor_variant_is_distinct(self):
        business = make_business()
        generic = fallback_analysis(business, make_competitors())
        empty = no_competitor_analysis(business)
        assert generic.swot.strengths != empty.swot.strengths
        assert "no direct competitors" not in " ".join(generic.swot.strengths).lower()

    def test_fallback_uses_competitor_stats(self):
        result = fallback_analysis(make_business(), make_competitors())
        # ratings 4.1, 4.3, 4.5 ; rating counts 20 + 40 + 60
        assert "4.3/5.0" in result.executive_summary
        assert "120 total reviews" in result.executive_summary

    def test_language_specific_fallback(self):
        pt = fallback_analysis(make_business(), make_competitors(), "pt-PT")
        es = no_competitor_analysis(make_business(), "es")
        assert pt.executive_summary.startswith("Identificámos")
        assert es.executive_summary.startswith("¡Buenas noticias!")

    def test_unknown_language_uses_english(self):
        result = fallback_analysis(make_business(), make_competitors(), "de")
        assert result.executive_summary.startswith("We identified")


# ─── Prompt ──────────────────────────────────────────────────────────────────

class TestPrompt:
    def test_pro_plan_asks_for_more_depth(self):
        competitors = make_competitors()
        pro = build_prompt(make_business(), competitors, "en", "pro")
        free = build_prompt(make_business(), competitors, "en", "free")
        assert "5-7 items" in pro
        assert "3-4 items" in free

    def test_prompt_includes_competitors_and_language(self):
        prompt = build_prompt(make_business(), make_competitors(2), "pt", None)
        assert "Rival 1" in prompt and "Rival 2" in prompt
        assert "Portuguese" in prompt
        assert "Good food, slow service" in prompt
