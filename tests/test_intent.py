"""Tests for rule-based mode classification."""

from quickllm.core.intent import (
    IntentClassifier,
    IntentResult,
    is_math_expression,
    resolve_mode,
)

SENTENCE = "The river flows past the old stone mill and farmers gather grain in late autumn. "


class TestClassify:
    """Tests for IntentClassifier.classify."""

    def setup_method(self):
        self.classifier = IntentClassifier()

    def test_blank_text_defaults_to_summarize(self):
        result = self.classifier.classify("   ")
        assert result.mode == "summarize"
        assert result.confidence == 0.5
        assert result.reason == "default"

    def test_arithmetic_is_maths(self):
        """Pure arithmetic scores above 1.0 and is capped."""
        result = self.classifier.classify("2+2")
        assert result.mode == "maths"
        assert result.confidence == 1.0
        assert "math expression detected" in result.matches

    def test_translation_request(self):
        result = self.classifier.classify("Translate this to Spanish: good morning")
        assert result.mode == "translate"
        assert 0.3 < result.confidence <= 1.0

    def test_explanation_request(self):
        result = self.classifier.classify("Can you explain how photosynthesis works?")
        assert result.mode == "explain"
        assert any(m.startswith("keyword: ") for m in result.matches)

    def test_long_plain_text_is_summarized(self):
        """No keywords at all: the length decides."""
        text = SENTENCE * 8
        assert len(text) > 500

        result = self.classifier.classify(text)
        assert result.mode == "summarize"
        assert result.confidence == 0.5

    def test_short_plain_text_is_explained(self):
        result = self.classifier.classify("Grain mill by the river.")
        assert result.mode == "explain"
        assert result.confidence == 0.4

    def test_medium_plain_text_is_simplified(self):
        result = self.classifier.classify(SENTENCE.strip())
        assert result.mode == "simplify"
        assert result.confidence == 0.4

    def test_deterministic(self):
        text = "Please summarize the key points of this report"
        assert self.classifier.classify(text) == self.classifier.classify(text)

    def test_confidence_always_in_range(self):
        for text in ("2*3", "explain why the sky is blue", SENTENCE * 10, "x"):
            result = self.classifier.classify(text)
            assert 0.0 <= result.confidence <= 1.0


class TestIsMathExpression:
    """Tests for is_math_expression."""

    def test_pure_arithmetic(self):
        assert is_math_expression("2 + 2") is True
        assert is_math_expression("(3.5 * 4) / 2") is True

    def test_mostly_math_characters(self):
        assert is_math_expression("x = 3*4+5") is True

    def test_prose_with_numbers(self):
        assert is_math_expression("I have 2 apples + 3 pears") is False
        assert is_math_expression("hello") is False
        assert is_math_expression("") is False


class TestResolveMode:
    """Tests for resolve_mode."""

    def test_explicit_mode_wins(self):
        result = resolve_mode("2+2", "translate", IntentClassifier())
        assert result == IntentResult("translate", 1.0, "user specified mode")

    def test_auto_consults_classifier(self):
        assert resolve_mode("2+2", "auto", IntentClassifier()).mode == "maths"
