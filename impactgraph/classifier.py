"""Breaking-change classification of a file diff."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from . import config
from .extraction import Field, as_bool, as_string_list, as_text, extract_json_object, lenient_fields
from .llm import LocalLLM

logger = logging.getLogger(__name__)

BREAKING_RUBRIC = """STRICT DEFINITION OF BREAKING CHANGE:
- Renaming an exported function.
- Changing the runtime structure of the return value (e.g., returning an object instead of an array).
- Adding a required argument.
- Removing an argument.

NON-BREAKING CHANGES (DO NOT REPORT AS BREAKING):
- Changing a specific type to 'any' or 'unknown' (type widening is NOT breaking).
- Adding an optional argument.
- Internal logic changes that do not affect the output structure.
- Refactoring or code cleanup."""

DEFAULT_EXPLANATION = "Analyzed by classifier"

VERDICT_FIELDS = {
    "changedFunctions": Field(as_string_list, []),
    "isBreaking": Field(as_bool, False),
    "explanation": Field(as_text, DEFAULT_EXPLANATION),
}


@dataclass(frozen=True)
class ClassificationRequest:
    old_content: str
    new_content: str
    rubric: str = BREAKING_RUBRIC

    @classmethod
    def build(
        cls,
        old_content: str,
        new_content: str,
        limit: Optional[int] = None,
        rubric: str = BREAKING_RUBRIC,
    ) -> "ClassificationRequest":
        """Truncate both sides to *limit* characters (default from config)."""
        limit = config.CONTENT_TRUNCATE_CHARS if limit is None else limit
        return cls(old_content[:limit], new_content[:limit], rubric)


@dataclass
class ClassificationVerdict:
    is_breaking: bool = False
    explanation: str = DEFAULT_EXPLANATION
    changed_functions: List[str] = field(default_factory=list)
    succeeded: bool = True

    @classmethod
    def failed(cls, reason: str) -> "ClassificationVerdict":
        return cls(is_breaking=False, explanation=reason, changed_functions=[], succeeded=False)


class ChangeClassifier(ABC):
    """Decides whether a change is API-breaking and which symbols it touches."""

    @abstractmethod
    def classify(self, request: ClassificationRequest) -> ClassificationVerdict:
        ...


class LLMChangeClassifier(ChangeClassifier):
    """Asks a text-completion model and reads the JSON embedded in its reply."""

    def __init__(self, llm: Optional[LocalLLM] = None) -> None:
        self.llm = llm or LocalLLM()

    def classify(self, request: ClassificationRequest) -> ClassificationVerdict:
        reply = self.llm.generate(build_prompt(request))
        if not reply:
            logger.warning("Classifier returned an empty reply")
            return ClassificationVerdict.failed("Classification unavailable")
        logger.debug("Classifier raw reply: %s", reply)
        return parse_verdict(reply)


def build_prompt(request: ClassificationRequest) -> str:
    return (
        "Analyze these code changes and provide two things:\n"
        "1. A list of changed function names (added, modified, or removed).\n"
        "2. Whether this is a breaking API change.\n\n"
        f"{request.rubric}\n\n"
        "OLD CODE:\n"
        f"```\n{request.old_content}\n```\n\n"
        "NEW CODE:\n"
        f"```\n{request.new_content}\n```\n\n"
        "Respond ONLY with valid JSON in this format:\n"
        "{\n"
        '  "changedFunctions": ["funcName1", "funcName2"],\n'
        '  "isBreaking": true/false,\n'
        '  "explanation": "Brief explanation of why it is breaking or not"\n'
        "}\n"
        'If no functions changed, set "changedFunctions" to [].'
    )


def parse_verdict(reply: str) -> ClassificationVerdict:
    """Read a verdict out of a free-text reply; unparseable replies fail softly."""
    payload = extract_json_object(reply)
    if payload is None:
        logger.warning("Classifier reply contained no JSON object")
        return ClassificationVerdict.failed("Classification reply was not understood")
    values = lenient_fields(payload, VERDICT_FIELDS)
    return ClassificationVerdict(
        is_breaking=values["isBreaking"],
        explanation=values["explanation"],
        changed_functions=values["changedFunctions"],
    )
