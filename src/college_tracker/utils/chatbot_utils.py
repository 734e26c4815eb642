import json
import logging
import typing

import pydantic
import requests

from college_tracker.models.essay_models import EssayCritiqueModel

_LOGGER = logging.getLogger()
_LOGGER.setLevel(logging.INFO)

CHATBOT_MODEL = "gemini-2.0-flash"


class ChatBotApiError(Exception):
    def __init__(self, msg: str, status_code: int = 503) -> None:
        super().__init__(msg)
        self.status_code = status_code


_ESSAY_CRITIQUE_PROMPT_TEMPLATE = """
You are an experienced college admissions counselor reviewing a high school student's
application essay. Give honest, specific and encouraging feedback. Focus on clarity,
voice, structure and how well the essay answers the prompt. Do not rewrite the essay.

### Essay Details

**Title:** {title}

**College:** {college_name}

**Essay Prompt:**

{prompt}

**Word Limit:** {word_limit}

**Essay Draft:**

{content}

### Instructions

Please provide your critique in a strict JSON format with the following structure and keys (use camelCase for keys).
For example:

```
{{
    "strengths": ["Vivid opening anecdote that sets up the theme."],
    "issues": ["The conclusion restates the introduction without adding reflection."],
    "lineEdits": [
        {{
            "line": "I have always been passionate about science.",
            "suggestion": "Replace with a concrete moment that shows the passion.",
            "reason": "Generic openers are common and forgettable."
        }}
    ],
    "overallFeedback": "A strong draft with a clear voice. Tighten the ending."
}}
```

Return at most 5 strengths, 5 issues and 5 line edits. Each "line" must be copied
verbatim from the essay draft.

IMPORTANT: Respond ONLY with the valid JSON object as described. Do not include
any other text, greetings, or conversational filler before or after the JSON.
"""

_ESSAY_REWRITE_PROMPT_TEMPLATE = """
You are a helpful essay coach. The student wants help rewriting or improving their
college application essay based on their instruction. Provide a rewritten version that
follows the instruction. Do not write the entire essay from scratch; work with what
they have and keep their voice. The essay should be around {word_limit} words.

**Essay Prompt:**

{prompt}

**Current Essay:**

{content}

**Instruction:** {instruction}

Respond ONLY with the improved essay text.
"""

_ESSAY_COACH_PROMPT_TEMPLATE = """
You are a helpful essay coach. Provide suggestions on structure, story and approach for
a student's college application essay. Do not rewrite the essay. The essay should be
around {word_limit} words.

**Essay Prompt:**

{prompt}

**Current Essay:**

{content}

Respond with short bullet points only.
"""


class ChatBotWrapper:
    def __init__(self) -> None:
        pass

    def _generate_text(
        self,
        *,
        chatbot_api_key: str,
        prompt: str,
        timeout_seconds: int = 45,
        max_output_tokens: int = 1024,
    ) -> str:
        """
        Helper method to make the POST request to Google's Generative AI content generation.
        Handles common request setup and error handling, returning the first candidate's text.
        """
        api_endpoint = f"https://generativelanguage.googleapis.com/v1beta/models/{CHATBOT_MODEL}:generateContent?key={chatbot_api_key}"
        request_payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": max_output_tokens},
        }

        try:
            response = requests.post(api_endpoint, json=request_payload, timeout=timeout_seconds)
            response.raise_for_status()
            api_response_data = response.json()

            candidates = api_response_data.get("candidates")
            if not isinstance(candidates, list) or len(candidates) == 0 or not candidates[0].get("content"):
                _LOGGER.error("Invalid or missing candidates/content in GenAI API response: %s", api_response_data)
                raise ChatBotApiError("AI service returned an unexpected response structure (no candidates/content).")

            parts = candidates[0]["content"].get("parts")
            if not isinstance(parts, list) or len(parts) == 0 or not parts[0].get("text"):
                _LOGGER.error("Invalid or missing parts/text in GenAI API response: %s", api_response_data)
                raise ChatBotApiError("AI service returned an unexpected response structure (no parts/text).")

            generated_text = str(parts[0]["text"])
            _LOGGER.info(f"Raw GenAI response text (first 500 chars): {generated_text[:500]}")
            return generated_text

        except requests.exceptions.Timeout:
            _LOGGER.error("Google GenAI API request timed out.")
            raise ChatBotApiError("AI service request timed out.", 504)
        except requests.exceptions.RequestException as e:
            _LOGGER.error(f"Google GenAI API request failed: {e}")
            if e.response is not None:
                _LOGGER.error(f"GenAI API Error Response: {e.response.text}")
            raise ChatBotApiError(f"Failed to communicate with AI service: {str(e)}")
        except (KeyError, IndexError, ValueError) as e:
            _LOGGER.error(f"Error processing AI response: {e}", exc_info=True)
            raise ChatBotApiError(f"Invalid or unexpected response from AI service: {str(e)}")

    def _call_google_generative_api(
        self,
        *,
        chatbot_api_key: str,
        prompt: str,
        timeout_seconds: int = 45,
        max_output_tokens: int = 1024,
    ) -> dict:
        generated_text = self._generate_text(
            chatbot_api_key=chatbot_api_key,
            prompt=prompt,
            timeout_seconds=timeout_seconds,
            max_output_tokens=max_output_tokens,
        )

        try:
            json_start = generated_text.find("{")
            json_end = generated_text.rfind("}")
            if json_start != -1 and json_end != -1 and json_end > json_start:
                return json.loads(generated_text[json_start : json_end + 1])
            return json.loads(generated_text)
        except json.JSONDecodeError as json_e:
            _LOGGER.error(f"Failed to parse. Error: {json_e}. Text: {generated_text}", exc_info=True)
            raise ChatBotApiError(f"AI returned non-JSON response. Content: {generated_text[:500]}")

    def generate_essay_critique_prompt(
        self,
        *,
        title: str,
        content: str,
        prompt: typing.Optional[str],
        college_name: typing.Optional[str],
        word_limit: typing.Optional[int],
    ) -> str:
        return _ESSAY_CRITIQUE_PROMPT_TEMPLATE.format(
            title=title,
            content=content,
            prompt=prompt or "Not provided.",
            college_name=college_name or "Not specified.",
            word_limit=word_limit if word_limit else "None",
        )

    def call_essay_critique_api(
        self,
        *,
        chatbot_api_key: str,
        title: str,
        content: str,
        prompt: typing.Optional[str] = None,
        college_name: typing.Optional[str] = None,
        word_limit: typing.Optional[int] = None,
    ) -> EssayCritiqueModel:
        critique_prompt = self.generate_essay_critique_prompt(
            title=title,
            content=content,
            prompt=prompt,
            college_name=college_name,
            word_limit=word_limit,
        )
        generated_dict = self._call_google_generative_api(
            chatbot_api_key=chatbot_api_key,
            prompt=critique_prompt,
            timeout_seconds=60,
        )

        try:
            critique = EssayCritiqueModel.model_validate(generated_dict)
            _LOGGER.info(f"Parsed: {critique.model_dump_json(indent=2, exclude_none=True)}")
            return critique
        except (pydantic.ValidationError, ValueError) as e:
            _LOGGER.error(f"Error parsing API response: {e}. Raw data: {generated_dict}", exc_info=True)
            raise ValueError(f"Invalid or unexpected response structure from AI for essay critique: {str(e)}")

    def call_essay_rewrite_api(
        self,
        *,
        chatbot_api_key: str,
        content: str,
        instruction: str,
        prompt: typing.Optional[str] = None,
        word_limit: typing.Optional[int] = None,
    ) -> str:
        rewrite_prompt = _ESSAY_REWRITE_PROMPT_TEMPLATE.format(
            content=content,
            instruction=instruction,
            prompt=prompt or "Not provided.",
            word_limit=word_limit or 650,
        )
        return self._generate_text(
            chatbot_api_key=chatbot_api_key,
            prompt=rewrite_prompt,
            timeout_seconds=60,
            max_output_tokens=2048,
        ).strip()

    def call_essay_coach_api(
        self,
        *,
        chatbot_api_key: str,
        content: str,
        prompt: typing.Optional[str] = None,
        word_limit: typing.Optional[int] = None,
    ) -> str:
        coach_prompt = _ESSAY_COACH_PROMPT_TEMPLATE.format(
            content=content,
            prompt=prompt or "Not provided.",
            word_limit=word_limit or 650,
        )
        return self._generate_text(chatbot_api_key=chatbot_api_key, prompt=coach_prompt, timeout_seconds=60).strip()
