#!/usr/bin/env python3
import json
from unittest.mock import Mock, patch

import pytest
import requests

from college_tracker.utils.chatbot_utils import CHATBOT_MODEL, ChatBotApiError, ChatBotWrapper


def make_genai_response(text: str) -> Mock:
    mock_response = Mock()
    mock_response.status_code = 200
    mock_response.raise_for_status.return_value = None
    mock_response.json.return_value = {
        "candidates": [
            {
                "content": {"parts": [{"text": text}], "role": "model"},
            }
        ],
    }
    return mock_response


CRITIQUE_JSON = json.dumps(
    {
        "strengths": ["Vivid opening anecdote."],
        "issues": ["Conclusion repeats the introduction."],
        "lineEdits": [
            {
                "line": "I have always loved science.",
                "suggestion": "Open with a specific moment instead.",
                "reason": "Generic openers are forgettable.",
            }
        ],
        "overallFeedback": "A strong draft with a clear voice.",
    }
)


def test_chatbot_wrapper_init() -> None:
    ChatBotWrapper()


def test_generate_essay_critique_prompt_with_all_details() -> None:
    cbw = ChatBotWrapper()
    prompt = cbw.generate_essay_critique_prompt(
        title="Why Engineering",
        content="The first bridge I built collapsed.",
        prompt="Why this major?",
        college_name="State University",
        word_limit=650,
    )

    assert "**Title:** Why Engineering" in prompt
    assert "**College:** State University" in prompt
    assert "**Essay Prompt:**\n\nWhy this major?\n" in prompt
    assert "**Word Limit:** 650" in prompt
    assert "**Essay Draft:**\n\nThe first bridge I built collapsed.\n" in prompt
    assert '"overallFeedback"' in prompt


def test_generate_essay_critique_prompt_fallbacks() -> None:
    cbw = ChatBotWrapper()
    prompt = cbw.generate_essay_critique_prompt(
        title="Untitled",
        content="Draft",
        prompt=None,
        college_name=None,
        word_limit=None,
    )

    assert "**College:** Not specified." in prompt
    assert "**Essay Prompt:**\n\nNot provided.\n" in prompt
    assert "**Word Limit:** None" in prompt


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_critique_api_normal_behavior(mock_post):
    mock_post.return_value = make_genai_response(CRITIQUE_JSON)

    critique = ChatBotWrapper().call_essay_critique_api(
        chatbot_api_key="key",
        title="Why Engineering",
        content="I have always loved science.",
        word_limit=650,
    )

    assert critique.strengths == ["Vivid opening anecdote."]
    assert critique.issues == ["Conclusion repeats the introduction."]
    assert critique.lineEdits[0].line == "I have always loved science."
    assert critique.lineEdits[0].reason == "Generic openers are forgettable."
    assert critique.overallFeedback == "A strong draft with a clear voice."

    mock_post.assert_called_once()
    url = mock_post.call_args.args[0]
    assert CHATBOT_MODEL in url
    assert url.endswith("key=key")
    assert mock_post.call_args.kwargs["timeout"] == 60
    sent_prompt = mock_post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
    assert "I have always loved science." in sent_prompt


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_critique_api_strips_surrounding_text(mock_post):
    mock_post.return_value = make_genai_response(f"Here is my review:\n```json\n{CRITIQUE_JSON}\n```")

    critique = ChatBotWrapper().call_essay_critique_api(chatbot_api_key="key", title="T", content="Draft")

    assert critique.overallFeedback == "A strong draft with a clear voice."


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_critique_api_missing_parts(mock_post):
    mock_response = make_genai_response("")
    mock_response.json.return_value = {"candidates": [{"content": {"parts": []}}]}
    mock_post.return_value = mock_response

    with pytest.raises(ChatBotApiError):
        ChatBotWrapper().call_essay_critique_api(chatbot_api_key="key", title="T", content="Draft")


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_critique_api_no_candidates(mock_post):
    mock_response = make_genai_response("")
    mock_response.json.return_value = {"candidates": []}
    mock_post.return_value = mock_response

    with pytest.raises(ChatBotApiError, match="no candidates"):
        ChatBotWrapper().call_essay_critique_api(chatbot_api_key="key", title="T", content="Draft")


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_critique_api_non_json(mock_post):
    mock_post.return_value = make_genai_response("I cannot help with that.")

    with pytest.raises(ChatBotApiError, match="non-JSON"):
        ChatBotWrapper().call_essay_critique_api(chatbot_api_key="key", title="T", content="Draft")


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_critique_api_wrong_shape(mock_post):
    mock_post.return_value = make_genai_response('{"strengths": ["Nice."]}')

    with pytest.raises(ValueError, match="essay critique"):
        ChatBotWrapper().call_essay_critique_api(chatbot_api_key="key", title="T", content="Draft")


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_critique_api_timeout(mock_post):
    mock_post.side_effect = requests.exceptions.Timeout()

    with pytest.raises(ChatBotApiError) as exc_info:
        ChatBotWrapper().call_essay_critique_api(chatbot_api_key="key", title="T", content="Draft")

    assert exc_info.value.status_code == 504


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_critique_api_http_error(mock_post):
    mock_response = make_genai_response("")
    mock_response.raise_for_status.side_effect = requests.exceptions.HTTPError("429 Too Many Requests")
    mock_post.return_value = mock_response

    with pytest.raises(ChatBotApiError, match="Failed to communicate"):
        ChatBotWrapper().call_essay_critique_api(chatbot_api_key="key", title="T", content="Draft")


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_rewrite_api_returns_text(mock_post):
    mock_post.return_value = make_genai_response("  The bridge fell, and I learned to measure twice.\n")

    rewritten = ChatBotWrapper().call_essay_rewrite_api(
        chatbot_api_key="key",
        content="The first bridge I built collapsed.",
        instruction="Make the ending more reflective",
        prompt="Why this major?",
        word_limit=300,
    )

    assert rewritten == "The bridge fell, and I learned to measure twice."
    sent_prompt = mock_post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
    assert "**Instruction:** Make the ending more reflective" in sent_prompt
    assert "**Current Essay:**\n\nThe first bridge I built collapsed.\n" in sent_prompt
    assert "around 300 words" in sent_prompt
    assert mock_post.call_args.kwargs["json"]["generationConfig"]["maxOutputTokens"] == 2048


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_rewrite_api_does_not_parse_json(mock_post):
    mock_post.return_value = make_genai_response("I used {curly braces} in my essay.")

    rewritten = ChatBotWrapper().call_essay_rewrite_api(chatbot_api_key="key", content="Draft", instruction="Shorten")

    assert rewritten == "I used {curly braces} in my essay."


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_coach_api_returns_text(mock_post):
    mock_post.return_value = make_genai_response("- Start with the collapse.\n- Cut the second paragraph.")

    coaching = ChatBotWrapper().call_essay_coach_api(chatbot_api_key="key", content="Draft")

    assert coaching.startswith("- Start with the collapse.")
    sent_prompt = mock_post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
    assert "**Essay Prompt:**\n\nNot provided.\n" in sent_prompt
    assert "around 650 words" in sent_prompt


@patch("college_tracker.utils.chatbot_utils.requests.post")
def test_call_essay_coach_api_timeout(mock_post):
    mock_post.side_effect = requests.exceptions.Timeout()

    with pytest.raises(ChatBotApiError) as exc_info:
        ChatBotWrapper().call_essay_coach_api(chatbot_api_key="key", content="Draft")

    assert exc_info.value.status_code == 504
