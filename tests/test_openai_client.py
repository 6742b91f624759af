import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from config import Settings
from errors import AIAuthenticationError, AIRateLimitError, AIServiceError
from models import CHECKLIST_ITEMS, InstructionRecord
from OPENAI import (
    AIClient,
    get_checklist_prompt,
    get_file_analysis_prompt,
    get_instruction_feedback_prompt,
    normalize_checklist,
    parse_json_object,
    translate_error,
)


class StubCompletions:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(reply=None, error=None):
    completions = StubCompletions(reply, error)
    stub = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return AIClient(Settings(openai_api_key="sk-test"), client=stub), completions


def _status_error(cls, status):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return cls("provider said no", response=httpx.Response(status, request=request), body=None)


def _record(**kwargs):
    kwargs.setdefault("file_name", "plan.txt")
    kwargs.setdefault("content", "Ver 1.0 reviewed and approved by PM")
    return InstructionRecord(id="instruction_1", **kwargs)


def test_normalize_fills_missing_and_orders():
    items = normalize_checklist([
        {"srNo": 3, "compliance": "yes", "remark": "tracker present"},
        {"srNo": "1", "compliance": "Partial", "remark": "no approver"},
        {"srNo": 42, "compliance": "Yes"},
        "garbage",
    ])
    assert len(items) == 8
    assert [i.sr_no for i in items] == list(range(1, 9))
    assert [i.checklist for i in items] == CHECKLIST_ITEMS
    assert items[0].compliance == "Partial"
    assert items[2].compliance == "Yes"
    assert items[1].compliance == "Not Found"
    assert items[1].remark == "Not mentioned in the AI response"


def test_unknown_compliance_becomes_not_found():
    items = normalize_checklist([{"srNo": 1, "compliance": "Maybe", "remark": "?"}])
    assert items[0].compliance == "Not Found"


def test_parse_json_object_tolerates_wrapping():
    assert parse_json_object('{"a": 1}') == {"a": 1}
    assert parse_json_object('Sure!\n```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}
    assert parse_json_object("no json here") is None


def test_fill_checklist_uses_json_mode():
    reply = json.dumps({"checklist": [
        {"srNo": i, "checklist": item, "compliance": "No", "remark": f"item {i}"}
        for i, item in enumerate(CHECKLIST_ITEMS, start=1)
    ]})
    client, completions = _client(reply)
    items = client.fill_checklist(_record(is_pmpa=True))

    assert [i.remark for i in items] == [f"item {i}" for i in range(1, 9)]
    assert completions.requests[0]["response_format"] == {"type": "json_object"}
    assert completions.requests[0]["model"] == "gpt-4o"


def test_unparsable_checklist_falls_back():
    client, _ = _client("I could not do it")
    items = client.fill_checklist(_record())
    assert len(items) == 8
    assert all(i.compliance == "Not Found" for i in items)
    assert all(i.remark == "AI analysis failed to parse response" for i in items)


def test_feedback_is_plain_text():
    client, completions = _client("  ## Review\nLooks fine  ")
    assert client.generate_instruction_feedback(_record()) == "## Review\nLooks fine"
    assert "response_format" not in completions.requests[0]


def test_analyze_file_result():
    client, completions = _client("Detailed feedback")
    result = client.analyze_file("https://files.example.com/x.csv", "x.csv")
    assert result.source == "ai"
    assert result.feedback == "Detailed feedback"
    assert "https://files.example.com/x.csv" in completions.requests[0]["messages"][1]["content"]


def test_empty_reply_is_an_error():
    client, _ = _client("")
    with pytest.raises(AIServiceError):
        client.generate_instruction_feedback(_record())


@pytest.mark.parametrize("error, expected", [
    (_status_error(openai.RateLimitError, 429), AIRateLimitError),
    (_status_error(openai.AuthenticationError, 401), AIAuthenticationError),
    (_status_error(openai.InternalServerError, 500), AIServiceError),
    (openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com")), AIServiceError),
])
def test_provider_errors_are_translated(error, expected):
    client, _ = _client(error=error)
    with pytest.raises(expected) as info:
        client.generate_instruction_feedback(_record())
    assert type(info.value) is expected


def test_rate_limit_detected_from_message():
    assert isinstance(translate_error(RuntimeError("429 Too Many Requests")), AIRateLimitError)
    assert isinstance(translate_error(RuntimeError("Quota exceeded for project")), AIRateLimitError)
    assert type(translate_error(RuntimeError("socket closed"))) is AIServiceError


def test_file_prompt_includes_instruction_details():
    instruction = _record(custom_prompt="Check supplier names", input_data={"Region": "EMEA"},
                          direct_url="https://files.example.com/plan.txt")
    prompt = get_file_analysis_prompt("https://files.example.com/data.xlsx", "data.xlsx", instruction)
    assert "data.xlsx" in prompt
    assert "https://files.example.com/plan.txt" in prompt
    assert "Ver 1.0 reviewed and approved by PM" in prompt
    assert "CUSTOM ANALYSIS INSTRUCTIONS: Check supplier names" in prompt
    assert "Region: EMEA" in prompt


def test_binary_instruction_content_is_not_inlined():
    instruction = _record(file_name="rules.xlsx", content="[Binary file: rules.xlsx]", is_binary=True)
    prompt = get_file_analysis_prompt("https://x", "data.csv", instruction)
    assert "INSTRUCTION CONTENT" not in prompt
    assert "INSTRUCTION FILE: rules.xlsx" in prompt


def test_feedback_prompt_variants():
    plain = get_instruction_feedback_prompt(_record())
    assert "Best Practices Alignment" in plain
    assert "SPREADSHEET ANALYSIS" not in plain

    pmpa = get_instruction_feedback_prompt(_record(file_name="BDM_PMPA.xlsx", is_pmpa=True))
    assert "PMP-A Standards Compliance" in pmpa
    assert "SPECIAL INSTRUCTIONS FOR SPREADSHEET ANALYSIS" in pmpa
    assert "Type: Excel Spreadsheet" in pmpa


def test_checklist_prompt_lists_every_item():
    prompt = get_checklist_prompt(_record())
    for i, item in enumerate(CHECKLIST_ITEMS, start=1):
        assert f"{i}. {item}" in prompt


def test_reply_without_choices_is_an_error():
    completions = SimpleNamespace(create=lambda **kwargs: SimpleNamespace(choices=[]))
    client = AIClient(Settings(openai_api_key="sk-test"),
                      client=SimpleNamespace(chat=SimpleNamespace(completions=completions)))
    with pytest.raises(AIServiceError, match="empty response"):
        client.analyze_file("https://files.example.com/x.csv", "x.csv")
