import logging
import re
from typing import Optional

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class SuspiciousInputError(ValueError):
    pass


class InputValidator:
    """
    Screens essay text before it is placed into an AI prompt, using objective,
    measurable criteria.

    Protection mechanisms:
    - Length limits per field type
    - Control character restrictions
    - Excessive formatting limits
    - Character composition checks
    """

    # Maximum lengths for different input types
    MAX_LENGTHS = {
        "title": 200,
        "college_name": 200,
        "prompt": 2000,
        "content": 15000,
        "instruction": 1000,
    }

    # Maximum number of markdown heading lines (prevents section injection)
    MAX_MARKDOWN_HEADERS = 3
    MARKDOWN_HEADING_PATTERN = re.compile(r"^[ \t]{0,3}#{1,6}[ \t]+\S", re.MULTILINE)

    # Maximum number of code block markers
    MAX_CODE_BLOCKS = 2

    # Maximum percentage of non-printable/control characters
    MAX_CONTROL_CHAR_PERCENTAGE = 5

    # Maximum consecutive special characters, with repeats of one character counted once
    MAX_CONSECUTIVE_SPECIAL_CHARS = 10

    @classmethod
    def validate_essay_input(
        cls,
        title: str,
        content: str,
        prompt: Optional[str] = None,
        college_name: Optional[str] = None,
    ) -> None:
        """
        Validate all fields of an essay submitted for critique.

        :raises SuspiciousInputError: If input validation fails
        """
        cls.validate_field(title, "title")
        cls.validate_field(content, "content")

        if prompt:
            cls.validate_field(prompt, "prompt")
        if college_name:
            cls.validate_field(college_name, "college_name")

    @classmethod
    def validate_field(cls, text: str, field_name: str) -> None:
        """
        Validate a single input field using objective criteria.

        :raises SuspiciousInputError: If input validation fails
        """
        if not isinstance(text, str):
            raise SuspiciousInputError(f"{field_name} must be a string")

        # 1. Length check
        max_length = cls.MAX_LENGTHS.get(field_name, 2000)
        if len(text) > max_length:
            _LOGGER.warning(f"Length violation: {field_name} is {len(text)} chars (max {max_length})")
            raise SuspiciousInputError(f"{field_name} exceeds maximum length of {max_length} characters")

        # Empty strings are fine - Pydantic handles required fields
        if not text:
            return

        # 2. Control character check
        control_chars = sum(1 for c in text if ord(c) < 32 and c not in "\n\r\t")
        if control_chars > 0:
            control_percentage = (control_chars / len(text)) * 100
            if control_percentage > cls.MAX_CONTROL_CHAR_PERCENTAGE:
                _LOGGER.warning(f"Excessive control characters in {field_name}: {control_percentage:.1f}%")
                raise SuspiciousInputError(f"{field_name} contains too many control characters")

        # 3. Excessive markdown headings (structure injection); a bare "###" scene break is not a heading
        header_count = len(cls.MARKDOWN_HEADING_PATTERN.findall(text))
        if header_count > cls.MAX_MARKDOWN_HEADERS:
            _LOGGER.warning(f"Excessive headers in {field_name}: {header_count} (max {cls.MAX_MARKDOWN_HEADERS})")
            raise SuspiciousInputError(f"{field_name} contains too many section headers")

        # 4. Code block markers (context escaping)
        code_block_count = text.count("```")
        if code_block_count > cls.MAX_CODE_BLOCKS:
            _LOGGER.warning(f"Excessive code blocks in {field_name}: {code_block_count} (max {cls.MAX_CODE_BLOCKS})")
            raise SuspiciousInputError(f"{field_name} contains too many code block markers")

        # 5. Consecutive mixed special characters (obfuscation/injection attempts).
        # A repeated character such as a scene break or ellipsis counts once.
        max_consecutive = 0
        current_consecutive = 0
        previous_char = ""
        for char in text:
            if not char.isalnum() and not char.isspace():
                if char != previous_char:
                    current_consecutive += 1
                    max_consecutive = max(max_consecutive, current_consecutive)
            else:
                current_consecutive = 0
            previous_char = char

        if max_consecutive > cls.MAX_CONSECUTIVE_SPECIAL_CHARS:
            _LOGGER.warning(f"Excessive consecutive special chars in {field_name}: {max_consecutive}")
            raise SuspiciousInputError(f"{field_name} contains unusual character sequences")

    @classmethod
    def sanitize_for_logging(cls, text: str, max_length: int = 100) -> str:
        """
        Sanitize text for safe logging (via truncation).

        :param text: Text to sanitize
        :param max_length: Maximum length to include in logs
        :returns: Sanitized text safe for logging
        """
        if len(text) > max_length:
            return text[:max_length] + "..."
        return text
