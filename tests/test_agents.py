"""
Tests for the extraction and scoring collaborators.

HTTP traffic to the Messages API and to the remote scoring endpoint is
mocked with respx.
"""

import asyncio
import json
from datetime import datetime, timezone
import httpx
import pytest
import respx
from src.core.config import settings
from src.core.errors import AgentError, BudgetExceededError, ErrorKind
from src.models.pipeline import ValidationResult
from src.services.agents import (
    ClaudeExtractionAgent,
    ClaudeScoringAgent,
    HeuristicScoringAgent,
    MockExtractionAgent,
    RemoteScoringAgent,
    get_extraction_agent,
    get_scoring_agent,
    normalize_scores,
)
from src.services.agents.anthropic_client import AnthropicMessagesClient, classify_http_error
from src.services.agents.json_tools import extract_json
from src.services.cost import DailyBudgetTracker
from src.services.document_types import ExtractedFields
from src.services.validation import validate_document_fields

API = "https://api.test"
MESSAGES_URL = f"{API}/v1/messages"
SCORE_URL = "https://scorer.test/documents/score"


def _client():
    return AnthropicMessagesClient(api_key="test-key", base_url=API, timeout_seconds=5)


def _message(text, input_tokens=1200, output_tokens=300):
    return httpx.Response(200, json={
        "id": "msg_1",
        "type": "message",
        "model": "claude-test",
        "content": [{"type": "text", "text": text}],
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    })


class TestExtractJson:
    def test_plain_json(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_prose(self):
        text = 'Here is the data: {"vendor_name": "ACME {Corp}", "n": [1, 2]} hope that helps'
        assert extract_json(text) == {"vendor_name": "ACME {Corp}", "n": [1, 2]}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", '{"unterminated": '])
    def test_returns_none_when_nothing_parses(self, text):
        assert extract_json(text) is None


@pytest.mark.parametrize("status,body,kind", [
    (401, {"error": {"type": "authentication_error", "message": "invalid x-api-key"}}, ErrorKind.AUTHENTICATION),
    (403, None, ErrorKind.AUTHENTICATION),
    (429, {"error": {"type": "rate_limit_error", "message": "slow down"}}, ErrorKind.RATE_LIMIT),
    (400, {"error": {"type": "invalid_request_error", "message": "Your credit balance is too low"}},
     ErrorKind.INSUFFICIENT_CREDITS),
    (529, {"error": {"type": "overloaded_error", "message": "Overloaded"}}, ErrorKind.SERVER),
    (500, None, ErrorKind.SERVER),
    (400, {"error": {"type": "invalid_request_error", "message": "bad image"}}, ErrorKind.INVALID_RESPONSE),
])
def test_classify_http_error(status, body, kind):
    assert classify_http_error(status, body)[0] == kind


class TestMessagesClient:
    def test_missing_api_key(self):
        client = AnthropicMessagesClient(api_key=None, base_url=API)
        client.api_key = None

        with pytest.raises(AgentError) as exc_info:
            asyncio.run(client.create_message("claude-test", "hi"))
        assert exc_info.value.kind == ErrorKind.API_KEY_MISSING

    def test_returns_text_and_usage(self):
        with respx.mock:
            route = respx.post(MESSAGES_URL).mock(return_value=_message("hello", 10, 2))

            response = asyncio.run(_client().create_message("claude-test", "hi", max_tokens=50))

            assert response.text == "hello"
            assert response.input_tokens == 10
            assert response.output_tokens == 2

            request = route.calls.last.request
            assert request.headers["x-api-key"] == "test-key"
            assert request.headers["anthropic-version"] == settings.anthropic_version
            sent = json.loads(request.content)
            assert sent["model"] == "claude-test"
            assert sent["max_tokens"] == 50
            assert sent["messages"] == [{"role": "user", "content": "hi"}]

    def test_error_status_raises_classified_error(self):
        with respx.mock:
            respx.post(MESSAGES_URL).mock(return_value=httpx.Response(
                401, json={"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}
            ))

            with pytest.raises(AgentError) as exc_info:
                asyncio.run(_client().create_message("claude-test", "hi"))

        assert exc_info.value.kind == ErrorKind.AUTHENTICATION
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "invalid x-api-key"

    @pytest.mark.parametrize("exception,kind", [
        (httpx.ReadTimeout("timed out"), ErrorKind.TIMEOUT),
        (httpx.ConnectError("refused"), ErrorKind.NETWORK),
    ])
    def test_transport_failures(self, exception, kind):
        with respx.mock:
            respx.post(MESSAGES_URL).mock(side_effect=exception)

            with pytest.raises(AgentError) as exc_info:
                asyncio.run(_client().create_message("claude-test", "hi"))

        assert exc_info.value.kind == kind

    def test_response_without_text_block(self):
        with respx.mock:
            respx.post(MESSAGES_URL).mock(return_value=httpx.Response(200, json={"content": [], "usage": {}}))

            with pytest.raises(AgentError) as exc_info:
                asyncio.run(_client().create_message("claude-test", "hi"))

        assert exc_info.value.kind == ErrorKind.INVALID_RESPONSE


class TestClaudeExtractionAgent:
    def test_extracts_fields_and_prices_call(self, invoice_data):
        agent = ClaudeExtractionAgent(client=_client(), model="claude-test")

        with respx.mock:
            route = respx.post(MESSAGES_URL).mock(
                return_value=_message("```json\n" + json.dumps(invoice_data) + "\n```", 2000, 500)
            )
            result = asyncio.run(agent.extract(b"\x89PNG fake", media_type="image/png"))

            content = json.loads(route.calls.last.request.content)["messages"][0]["content"]
            assert content[0]["type"] == "image"
            assert content[0]["source"]["media_type"] == "image/png"
            assert content[1]["type"] == "text"

        assert result.fields.reference_number == "INV-2024-001"
        assert result.fields.document_type == "invoice"
        assert result.cost.input_tokens == 2000
        assert result.cost.total_cost == pytest.approx(2000 / 1e6 * 3.00 + 500 / 1e6 * 15.00)

    def test_pdf_is_sent_as_document_block(self):
        content = ClaudeExtractionAgent(client=_client()).build_content("JVBERi0=", "application/pdf")

        assert content[0]["type"] == "document"
        assert content[0]["source"]["data"] == "JVBERi0="

    def test_alias_keys_from_model_are_accepted(self):
        agent = ClaudeExtractionAgent(client=_client())
        reply = json.dumps({"vendor_name": "ACME", "invoice_number": "A-77", "document_type": "bill"})

        with respx.mock:
            respx.post(MESSAGES_URL).mock(return_value=_message(reply))
            result = asyncio.run(agent.extract(b"img"))

        assert result.fields.reference_number == "A-77"
        assert result.fields.invoice_number == "A-77"

    def test_non_json_reply_is_invalid_response(self):
        agent = ClaudeExtractionAgent(client=_client())

        with respx.mock:
            respx.post(MESSAGES_URL).mock(return_value=_message("I cannot read this image."))
            with pytest.raises(AgentError) as exc_info:
                asyncio.run(agent.extract(b"img"))

        assert exc_info.value.kind == ErrorKind.INVALID_RESPONSE

    def test_empty_payload_is_rejected_without_calling_api(self):
        agent = ClaudeExtractionAgent(client=_client())

        with respx.mock:
            route = respx.post(MESSAGES_URL).mock(return_value=_message("{}"))
            with pytest.raises(AgentError) as exc_info:
                asyncio.run(agent.extract(b""))

            assert not route.called
        assert exc_info.value.kind == ErrorKind.EXTRACTION


class TestNormalizeScores:
    def test_flat_mapping_with_aliases(self):
        validated = {"reference_number": ValidationResult(valid=True)}
        scores = normalize_scores({"invoice_number": {"confidence": 0.9, "reasoning": "clear"}}, validated)

        assert scores["reference_number"].confidence == 0.9
        assert scores["reference_number"].reasoning == "clear"

    def test_nested_percentages_are_rescaled(self):
        raw = {"field_scores": {"vendor_name": {"confidence": 95}, "currency": 40}, "overall_confidence": 80}
        scores = normalize_scores(raw, {})

        assert scores["vendor_name"].confidence == pytest.approx(0.95)
        assert scores["currency"].confidence == pytest.approx(0.40)
        assert "overall_confidence" not in scores

    def test_invalid_fields_forced_to_zero(self):
        validated = {"transaction_date": ValidationResult(valid=False, error="Invalid date")}
        scores = normalize_scores({"transaction_date": {"confidence": 0.9}}, validated)

        assert scores["transaction_date"].confidence == 0.0
        assert scores["transaction_date"].reasoning == "Invalid date"

    def test_clamps_and_drops_unreadable(self):
        scores = normalize_scores({"a": {"confidence": -0.2}, "b": {"confidence": "high"}, "c": None}, {})

        assert scores["a"].confidence == 0.0
        assert set(scores) == {"a"}


class TestClaudeScoringAgent:
    def test_scores_and_records_spend(self, invoice):
        validated = validate_document_fields(invoice)
        budget = DailyBudgetTracker(daily_limit=1.0)
        agent = ClaudeScoringAgent(client=_client(), budget=budget, model="claude-test")
        reply = {field: {"confidence": 0.92, "reasoning": "legible"} for field in validated}

        with respx.mock:
            route = respx.post(MESSAGES_URL).mock(return_value=_message(json.dumps(reply), 1000, 400))
            result = asyncio.run(agent.score(invoice, validated))

            prompt = json.loads(route.calls.last.request.content)["messages"][0]["content"]
            assert "INV-2024-001" in prompt
            assert "numericValue" in prompt

        assert set(result.scores) == set(validated)
        assert result.cost.total_cost == pytest.approx(1000 / 1e6 * 0.80 + 400 / 1e6 * 4.00)
        assert budget.usage()["daily_total"] == pytest.approx(result.cost.total_cost)

    def test_exhausted_budget_skips_the_call(self, invoice):
        budget = DailyBudgetTracker(daily_limit=0.01)
        budget.record(0.02)
        agent = ClaudeScoringAgent(client=_client(), budget=budget)

        with respx.mock:
            route = respx.post(MESSAGES_URL).mock(return_value=_message("{}"))
            with pytest.raises(BudgetExceededError) as exc_info:
                asyncio.run(agent.score(invoice, validate_document_fields(invoice)))

            assert not route.called
        assert exc_info.value.kind == ErrorKind.RATE_LIMIT

    def test_reply_without_scores_is_invalid(self, invoice):
        agent = ClaudeScoringAgent(client=_client())

        with respx.mock:
            respx.post(MESSAGES_URL).mock(return_value=_message('{"note": "n/a"}'))
            with pytest.raises(AgentError) as exc_info:
                asyncio.run(agent.score(invoice, validate_document_fields(invoice)))

        assert exc_info.value.kind == ErrorKind.INVALID_RESPONSE


class TestRemoteScoringAgent:
    def test_posts_payload_and_reads_usage(self, invoice):
        validated = validate_document_fields(invoice)
        agent = RemoteScoringAgent(endpoint_url=SCORE_URL)

        with respx.mock:
            route = respx.post(SCORE_URL).mock(return_value=httpx.Response(200, json={
                "success": True,
                "data": {"vendor_name": {"confidence": 0.9, "reasoning": "ok"},
                         "amount_due": {"confidence": 0.8, "reasoning": "ok"}},
                "usage": {"inputTokens": 500, "outputTokens": 100},
            }))
            result = asyncio.run(agent.score(invoice, validated))

            sent = json.loads(route.calls.last.request.content)
            assert sent["extractedData"]["reference_number"] == "INV-2024-001"
            assert "invoice_number" not in sent["extractedData"]
            assert sent["validationResults"]["total_amount"]["numericValue"] == pytest.approx(1200.5)

        assert result.scores["total_amount"].confidence == 0.8
        assert result.cost.input_tokens == 500

    def test_rate_limit_error_type_is_mapped(self, invoice):
        agent = RemoteScoringAgent(endpoint_url=SCORE_URL)

        with respx.mock:
            respx.post(SCORE_URL).mock(return_value=httpx.Response(429, json={
                "error": "Daily API cost limit reached",
                "errorType": "rate_limit_error",
                "dailyLimit": 1.0,
                "currentUsage": 1.01,
            }))
            with pytest.raises(AgentError) as exc_info:
                asyncio.run(agent.score(invoice, validate_document_fields(invoice)))

        assert exc_info.value.kind == ErrorKind.RATE_LIMIT
        assert exc_info.value.status_code == 429

    def test_unknown_failure_is_scoring_error(self, invoice):
        agent = RemoteScoringAgent(endpoint_url=SCORE_URL)

        with respx.mock:
            respx.post(SCORE_URL).mock(return_value=httpx.Response(500, text="oops"))
            with pytest.raises(AgentError) as exc_info:
                asyncio.run(agent.score(invoice, validate_document_fields(invoice)))

        assert exc_info.value.kind == ErrorKind.SCORING

    @pytest.mark.parametrize("body", [
        [{"oops": 1}],
        {"success": True, "data": ["vendor_name", 0.9]},
        {"success": True, "data": "0.9"},
    ])
    def test_malformed_body_is_invalid_response(self, invoice, body):
        agent = RemoteScoringAgent(endpoint_url=SCORE_URL)

        with respx.mock:
            respx.post(SCORE_URL).mock(return_value=httpx.Response(200, json=body))
            with pytest.raises(AgentError) as exc_info:
                asyncio.run(agent.score(invoice, validate_document_fields(invoice)))

        assert exc_info.value.kind == ErrorKind.INVALID_RESPONSE

    def test_null_usage_counts_as_zero(self, invoice):
        agent = RemoteScoringAgent(endpoint_url=SCORE_URL)

        with respx.mock:
            respx.post(SCORE_URL).mock(return_value=httpx.Response(200, json={
                "success": True,
                "data": {"vendor_name": {"confidence": 0.9, "reasoning": "ok"}},
                "usage": {"inputTokens": None, "outputTokens": None},
            }))
            result = asyncio.run(agent.score(invoice, validate_document_fields(invoice)))

        assert result.scores["vendor_name"].confidence == 0.9
        assert result.cost.input_tokens == 0
        assert result.cost.total_cost == 0.0


class TestHeuristicScoringAgent:
    def test_scores_follow_quality_and_validation(self, invoice_data):
        invoice_data["extraction_quality"] = "medium"
        invoice_data["currency"] = "dollars"
        invoice_data["transaction_date"] = "soon"

        extracted = ExtractedFields.from_agent_output(invoice_data)
        validated = validate_document_fields(extracted)

        result = asyncio.run(HeuristicScoringAgent().score(extracted, validated))

        assert result.scores["vendor_name"].confidence == 0.85
        assert result.scores["currency"].confidence == 0.65
        assert result.scores["currency"].reasoning == validated["currency"].warning
        assert result.scores["transaction_date"].confidence == 0.0
        assert result.cost.total_cost == 0.0


def test_mock_extraction_is_deterministic():
    first = asyncio.run(MockExtractionAgent().extract(b"anything"))
    second = asyncio.run(MockExtractionAgent().extract("YWJj"))

    assert first.fields == second.fields
    assert first.fields.document_type == "invoice"
    assert first.cost.total_cost == 0.0


class TestAgentSelection:
    def test_offline_defaults(self, offline_settings):
        assert isinstance(get_extraction_agent(), MockExtractionAgent)
        assert isinstance(get_scoring_agent(), HeuristicScoringAgent)

    def test_api_key_selects_claude(self, offline_settings):
        offline_settings.anthropic_api_key = "test-key"

        assert isinstance(get_extraction_agent(), ClaudeExtractionAgent)
        assert isinstance(get_scoring_agent(), ClaudeScoringAgent)

    def test_endpoint_selects_remote_scoring(self, offline_settings):
        offline_settings.scoring_endpoint_url = SCORE_URL

        agent = get_scoring_agent()
        assert isinstance(agent, RemoteScoringAgent)
        assert agent.endpoint_url == SCORE_URL


def test_budget_clock_is_injectable():
    clock_time = datetime(2025, 6, 1, tzinfo=timezone.utc)
    budget = DailyBudgetTracker(daily_limit=2.0, clock=lambda: clock_time)
    assert budget.usage()["date"] == "2025-06-01"
