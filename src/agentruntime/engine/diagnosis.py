"""Error diagnosis consulted between attempts.

The default service is a deterministic substring taxonomy over the error
text. An LLM-backed service can replace it behind the same signature.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_EXCERPT_CHARS = 200

_NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "not found",
    "does not exist",
    "no such file",
    "cannot find",
    "could not find",
    "enoent",
)
_PERMISSION_PATTERNS: tuple[str, ...] = (
    "permission",
    "denied",
    "not permitted",
    "eacces",
    "unauthorized",
    "forbidden",
)
_SYNTAX_PATTERNS: tuple[str, ...] = (
    "syntax",
    "parse",
    "unexpected token",
    "unexpected eof",
)
_TIMEOUT_PATTERNS: tuple[str, ...] = (
    "timed out",
    "timeout",
    "deadline exceeded",
)
_NETWORK_PATTERNS: tuple[str, ...] = (
    "network",
    "connection",
    "unreachable",
    "dns",
    "econnrefused",
    "socket",
)
_INVALID_PATTERNS: tuple[str, ...] = (
    "invalid",
    "malformed",
    "bad request",
    "missing required",
)
_MEMORY_PATTERNS: tuple[str, ...] = (
    "out of memory",
    "memoryerror",
    "memory error",
    "cannot allocate",
)
_EXISTS_PATTERNS: tuple[str, ...] = (
    "already exists",
    "duplicate",
    "file exists",
    "eexist",
)
_TYPE_PATTERNS: tuple[str, ...] = (
    "typeerror",
    "type error",
    "mismatched types",
    "expected type",
    "wrong type",
)

# Ordered: the first category with a matching pattern wins.
_TAXONOMY: tuple[tuple[str, tuple[str, ...], str], ...] = (
    ("not_found", _NOT_FOUND_PATTERNS, "Check if file/path exists before operation"),
    (
        "permission_denied",
        _PERMISSION_PATTERNS,
        "Check file permissions and try with elevated privileges if needed",
    ),
    ("syntax", _SYNTAX_PATTERNS, "Review syntax and fix parsing errors"),
    ("timeout", _TIMEOUT_PATTERNS, "Break the work into smaller steps or allow more time"),
    ("network", _NETWORK_PATTERNS, "Verify network connectivity and the remote endpoint"),
    ("invalid_input", _INVALID_PATTERNS, "Validate inputs and supply every required parameter"),
    ("out_of_memory", _MEMORY_PATTERNS, "Process the data in smaller chunks to reduce memory use"),
    (
        "already_exists",
        _EXISTS_PATTERNS,
        "Target already exists; reuse it or choose a different name",
    ),
    ("type_error", _TYPE_PATTERNS, "Check argument and value types match what is expected"),
)


@dataclass(slots=True)
class ErrorDiagnosis:
    """Classification of one error message."""

    category: str
    matched_pattern: Optional[str]
    suggestion: str


def classify_error(error_text: str, excerpt_chars: int = DEFAULT_EXCERPT_CHARS) -> ErrorDiagnosis:
    """Map an error message onto the fixed taxonomy."""
    haystack = error_text.lower()
    for category, patterns, suggestion in _TAXONOMY:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return ErrorDiagnosis(category=category, matched_pattern=pattern, suggestion=suggestion)

    excerpt = error_text.strip()[:excerpt_chars]
    return ErrorDiagnosis(
        category="generic",
        matched_pattern=None,
        suggestion=f"Review error message and adjust approach: {excerpt}",
    )


def suggest_fix(
    goal: str,
    description: str,
    error_text: str,
    excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
) -> Optional[str]:
    """Short corrective hint for a failed attempt, or None without an error."""
    if not error_text or not error_text.strip():
        return None
    return classify_error(error_text, excerpt_chars).suggestion


def _first_match(haystack: str, patterns: tuple[str, ...]) -> Optional[str]:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None


class DiagnosisService(Protocol):
    async def suggest_fix(self, goal: str, description: str, error_text: str) -> Optional[str]: ...


class HeuristicDiagnosisService:
    """Deterministic diagnosis over the substring taxonomy."""

    def __init__(self, excerpt_chars: int = DEFAULT_EXCERPT_CHARS) -> None:
        self.excerpt_chars = excerpt_chars

    async def suggest_fix(self, goal: str, description: str, error_text: str) -> Optional[str]:
        suggestion = suggest_fix(goal, description, error_text, self.excerpt_chars)
        if suggestion:
            logger.info(f"Diagnosed error as {classify_error(error_text).category}")
        return suggestion


class LlmDiagnosisService:
    """Asks a language model for a correction, falling back to the heuristic.

    ``complete`` takes a prompt and returns the model's reply.
    """

    PROMPT = (
        "A task failed and will be retried.\n"
        "Goal: {goal}\n"
        "Task: {description}\n"
        "Error: {error}\n"
        "Reply with one short sentence describing how to fix the next attempt."
    )

    def __init__(
        self,
        complete: Callable[[str], Awaitable[str]],
        fallback: Optional[DiagnosisService] = None,
        max_chars: int = 300,
    ) -> None:
        self.complete = complete
        self.fallback = fallback or HeuristicDiagnosisService()
        self.max_chars = max_chars

    async def suggest_fix(self, goal: str, description: str, error_text: str) -> Optional[str]:
        if not error_text or not error_text.strip():
            return None
        prompt = self.PROMPT.format(goal=goal, description=description, error=error_text)
        try:
            reply = (await self.complete(prompt)).strip()
        except Exception as e:
            logger.warning(f"LLM diagnosis failed, using heuristic: {e}")
            reply = ""
        if reply:
            return reply[: self.max_chars]
        return await self.fallback.suggest_fix(goal, description, error_text)
