"""
Tests for the AI captioning client.

The OpenAI client is replaced by a mock whose chat.completions.create is an
AsyncMock, so no request leaves the process.
"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from midweave.ai import ImageAnalyzer, extract_analysis
from midweave.core.config import AnalyzerConfig
from midweave.core.exceptions import AnalysisError

REPLY = {
    "description": "Neon-lit alley in the rain",
    "imageType": "Digital Art",
    "style": {"primary": "Cyberpunk", "secondary": ["noir"], "influences": ["Blade Runner"]},
    "technical": {"quality": "high", "renderStyle": "painterly", "detailLevel": "dense", "lighting": "neon"},
    "colors": {"palette": ["#ff00aa", "#00ffee"], "mood": "electric", "contrast": "high"},
    "tags": {"style": ["cyberpunk"], "technical": ["bokeh"], "mood": ["moody"]},
}


def fake_client(content=None, error=None):
    create = AsyncMock()
    if error is not None:
        create.side_effect = error
    else:
        message = SimpleNamespace(content=content)
        create.return_value = SimpleNamespace(choices=[SimpleNamespace(message=message)])
    client = MagicMock()
    client.chat.completions.create = create
    return client


class TestExtractAnalysis:
    """Parsing the model reply."""

    def test_json_wrapped_in_prose(self):
        text = "Sure! Here you go:\n```json\n" + json.dumps(REPLY) + "\n```"
        assert extract_analysis(text)["imageType"] == "Digital Art"

    @pytest.mark.parametrize(
        "text,message",
        [
            (None, "No analysis received"),
            ("no json here", "No valid JSON"),
            ("{not: valid}", "Malformed JSON"),
            (json.dumps({"description": "only"}), "missing: imageType"),
            (json.dumps({**REPLY, "style": "flat"}), "not objects: style"),
            (json.dumps({**REPLY, "tags": ["moody"]}), "not objects: tags"),
        ],
    )
    def test_failures(self, text, message):
        with pytest.raises(AnalysisError, match=message):
            extract_analysis(text)


class TestImageAnalyzer:
    """ImageAnalyzer.analyze()."""

    async def test_returns_analysis(self, make_image):
        client = fake_client(json.dumps(REPLY))
        analyzer = ImageAnalyzer(AnalyzerConfig(model="gpt-4o-mini"), client=client)

        analysis = await analyzer.analyze(make_image(), "alley.png")

        assert analysis.style.primary == "Cyberpunk"
        assert analysis.colors.palette == ["#ff00aa", "#00ffee"]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        image_part = kwargs["messages"][0]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")

    async def test_jpeg_mime_type(self, make_image):
        client = fake_client(json.dumps(REPLY))
        await ImageAnalyzer(AnalyzerConfig(), client=client).analyze(make_image(fmt="JPEG"))
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0]["content"][1]["image_url"]["url"].startswith(
            "data:image/jpeg;base64,"
        )

    async def test_invalid_image_is_analysis_error(self):
        analyzer = ImageAnalyzer(AnalyzerConfig(), client=fake_client("{}"))
        with pytest.raises(AnalysisError, match="Failed to analyze image"):
            await analyzer.analyze(b"not an image", "x.png")

    async def test_api_error_is_wrapped(self, make_image):
        client = fake_client(error=openai.OpenAIError("rate limited"))
        with pytest.raises(AnalysisError, match="rate limited"):
            await ImageAnalyzer(AnalyzerConfig(), client=client).analyze(make_image())

    async def test_section_with_wrong_type(self, make_image):
        client = fake_client(json.dumps({**REPLY, "style": "flat"}))
        with pytest.raises(AnalysisError, match="not objects: style"):
            await ImageAnalyzer(AnalyzerConfig(), client=client).analyze(make_image())

    async def test_empty_reply(self, make_image):
        client = fake_client(content=None)
        with pytest.raises(AnalysisError, match="No analysis received"):
            await ImageAnalyzer(AnalyzerConfig(), client=client).analyze(make_image())

    def test_missing_api_key(self):
        analyzer = ImageAnalyzer(AnalyzerConfig(api_key=""))
        with pytest.raises(AnalysisError, match="OPENAI_API_KEY"):
            analyzer.client
