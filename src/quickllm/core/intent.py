"""Rule-based guess of the processing mode for a piece of text.

Each mode has a table of regular expressions, keywords, and a confidence
weight. Scores are accumulated per mode, weighted, and the best one wins if it
clears ``MIN_CONFIDENCE``; otherwise the text length decides.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from quickllm.core.types import AUTO_MODE

MIN_CONFIDENCE = 0.3
PATTERN_SCORE = 0.3
KEYWORD_WEIGHT = 0.4
LENGTH_SCORE = 0.3
LENGTH_THRESHOLD = 500
MATH_EXPRESSION_SCORE = 0.5
MATH_RATIO = 0.7

_MATH_ONLY = re.compile(r"^[\d+\-*/().\s^%=]+$")
_MATH_CHAR = re.compile(r"[\d+\-*/().\s^%=]")
_MATH_OPERATOR = re.compile(r"[+\-*/^%]")
_DIGIT = re.compile(r"\d")


@dataclass(frozen=True)
class IntentRule:
    patterns: tuple[re.Pattern[str], ...]
    keywords: tuple[str, ...]
    confidence: float
    length_based: bool = False


@dataclass
class IntentResult:
    mode: str
    confidence: float
    reason: str
    matches: list[str] = field(default_factory=list)


def _compile(*patterns: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, flags) for p in patterns)


INTENT_RULES: dict[str, IntentRule] = {
    "maths": IntentRule(
        patterns=(
            re.compile(r"^\s*[\d+\-*/().\s^%]+\s*$"),
            re.compile(r"^\s*\d+(\.\d+)?\s*[+\-*/]\s*\d+(\.\d+)?\s*$"),
            *_compile(
                r"calculate|compute|solve|math|equation|formula",
                r"what\s+is\s+\d+",
            ),
            re.compile(r"\d+\s*[+\-*/]\s*\d+"),
            *_compile(r"(\d+\s*%|\d+\s*percent)"),
        ),
        keywords=("calculate", "compute", "solve", "math", "equation", "formula", "result", "answer"),
        confidence=0.9,
    ),
    "translate": IntentRule(
        patterns=_compile(
            r"translate|translation|convert.*language|language.*convert",
            r"(spanish|french|german|italian|portuguese|chinese|japanese|korean|arabic|hindi|russian)",
            r"what.*mean.*in\s+(english|spanish|french)",
            r"how.*say.*in\s+(english|spanish|french)",
            r"\b(hola|bonjour|guten tag|ciao|konnichiwa|привет|你好)",
        ),
        keywords=("translate", "translation", "language", "mean", "say", "español", "français"),
        confidence=0.85,
    ),
    "explain": IntentRule(
        patterns=_compile(
            r"explain|clarify|what.*mean|how.*work|why.*important",
            r"can.*you.*explain|please.*explain|help.*understand",
            r"what.*is|how.*does|why.*does|when.*should",
            r"definition|concept|principle|theory|mechanism",
        ),
        keywords=("explain", "clarify", "understand", "mean", "definition", "concept", "how", "why", "what"),
        confidence=0.75,
    ),
    "simplify": IntentRule(
        patterns=_compile(
            r"simplify|simple.*terms|easier.*understand|break.*down",
            r"too.*complex|complicated|difficult.*understand",
            r"plain.*english|layman.*terms|simple.*words",
            r"make.*simpler|easier.*version",
        ),
        keywords=("simplify", "simple", "easier", "complex", "complicated", "plain", "layman"),
        confidence=0.8,
    ),
    "summarize": IntentRule(
        patterns=_compile(
            r"summary|summarize|brief|overview|key.*points",
            r"main.*points|important.*parts|tl;dr|tldr",
            r"condense|compress|short.*version",
        ),
        keywords=("summary", "summarize", "brief", "overview", "key", "main", "important"),
        confidence=0.7,
        length_based=True,
    ),
}


def is_math_expression(text: str) -> bool:
    """True for pure arithmetic, or digit-and-operator text made mostly of math characters."""
    trimmed = text.strip()
    if not trimmed:
        return False
    if _MATH_ONLY.match(trimmed):
        return True
    if _MATH_OPERATOR.search(trimmed) and _DIGIT.search(trimmed):
        math_chars = len(_MATH_CHAR.findall(trimmed))
        return math_chars / len(trimmed) >= MATH_RATIO
    return False


class IntentClassifier:
    """Deterministic text-to-mode classifier over static rule tables."""

    def __init__(self, rules: dict[str, IntentRule] | None = None):
        self._rules = dict(rules if rules is not None else INTENT_RULES)

    @property
    def modes(self) -> list[str]:
        return list(self._rules)

    def classify(self, text: str) -> IntentResult:
        if not text or not text.strip():
            return IntentResult("summarize", 0.5, "default")

        lowered = text.strip().lower()
        candidates: list[IntentResult] = []

        for mode, rule in self._rules.items():
            score = 0.0
            matches: list[str] = []

            for pattern in rule.patterns:
                if pattern.search(text):
                    score += PATTERN_SCORE
                    matches.append(f"pattern: {pattern.pattern[:50]}")

            matched_keywords = [k for k in rule.keywords if k.lower() in lowered]
            matches.extend(f"keyword: {k}" for k in matched_keywords)
            if matched_keywords:
                score += KEYWORD_WEIGHT * len(matched_keywords) / len(rule.keywords)

            if rule.length_based and len(text) > LENGTH_THRESHOLD:
                score += LENGTH_SCORE
                matches.append("length-based trigger")

            if mode == "maths" and is_math_expression(text):
                score += MATH_EXPRESSION_SCORE
                matches.append("math expression detected")

            final = score * rule.confidence
            if final > 0:
                candidates.append(
                    IntentResult(mode, min(final, 1.0), ", ".join(matches), matches)
                )

        # sort is stable, so ties keep rule-table order
        candidates.sort(key=lambda c: c.confidence, reverse=True)
        if candidates and candidates[0].confidence > MIN_CONFIDENCE:
            return candidates[0]
        return self._length_default(text)

    @staticmethod
    def _length_default(text: str) -> IntentResult:
        length = len(text)
        if length < 50:
            return IntentResult("explain", 0.4, "short text - default to explanation")
        if length < 200:
            return IntentResult("simplify", 0.4, "medium text - default to simplification")
        return IntentResult("summarize", 0.5, "long text - default to summarization")


def resolve_mode(text: str, mode: str, classifier: IntentClassifier) -> IntentResult:
    """An explicit mode always wins; only ``auto`` consults the classifier."""
    if mode and mode != AUTO_MODE:
        return IntentResult(mode, 1.0, "user specified mode")
    return classifier.classify(text)
