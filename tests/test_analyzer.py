"""Tests for rule-based query analysis."""

import pytest

from codematch.query import QueryAnalyzer
from codematch.query.analyzer import is_camel_case, is_snake_case
from codematch.query.context import PatternType, QueryIntent, QueryType, TokenType

pytestmark = [pytest.mark.unit]


@pytest.fixture
def analyzer():
    return QueryAnalyzer()


def _types(context):
    return {t.value: t.type for t in context.tokens}


class TestTokens:
    def test_normalize_preserves_case_and_code_characters(self, analyzer):
        assert analyzer.normalize("  find   PaymentService.process()!? ") == "find PaymentService.process()"

    def test_token_classification(self, analyzer):
        context = analyzer.analyze("the PaymentService class with user_account in com.shop.payment")
        types = _types(context)

        assert types["the"] == TokenType.STOP_WORD
        assert types["PaymentService"] == TokenType.CAMEL_CASE
        assert types["class"] == TokenType.CLASS_HINT
        assert types["user_account"] == TokenType.SNAKE_CASE
        assert types["com.shop.payment"] == TokenType.PACKAGE_NAME

    def test_action_domain_and_technical_words(self, analyzer):
        types = _types(analyzer.analyze("validate payment cache widget"))

        assert types["validate"] == TokenType.ACTION_WORD
        assert types["payment"] == TokenType.DOMAIN_TERM
        assert types["cache"] == TokenType.TECHNICAL_TERM
        assert types["widget"] == TokenType.IDENTIFIER

    def test_java_keyword_is_modifier(self, analyzer):
        assert _types(analyzer.analyze("public"))["public"] == TokenType.MODIFIER

    def test_helpers(self):
        assert is_camel_case("getUser")
        assert not is_camel_case("user")
        assert not is_camel_case("HTTP")
        assert is_snake_case("user_name")
        assert not is_snake_case("username")


class TestPatterns:
    def test_camel_case_split(self, analyzer):
        context = analyzer.analyze("UserAccountService")
        (pattern,) = context.patterns_of_type(PatternType.CAMEL_CASE_SPLIT)

        assert pattern.components == ("user", "account", "service")

    def test_compound_term(self, analyzer):
        context = analyzer.analyze("payment gateway")

        (pattern,) = context.patterns_of_type(PatternType.COMPOUND_TERM)
        assert pattern.components == ("payment", "gateway")

    def test_method_signature(self, analyzer):
        context = analyzer.analyze("who calls processPayment()")

        (pattern,) = context.patterns_of_type(PatternType.METHOD_SIGNATURE)
        assert pattern.components == ("processPayment",)
        assert pattern.confidence == 0.95

    def test_wildcards(self, analyzer):
        context = analyzer.analyze("get* methods and *Service classes")

        components = sorted(p.components[0] for p in context.patterns_of_type(PatternType.WILDCARD_PATTERN))
        assert components == ["Service", "get"]


class TestClassification:
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("find the payment class", QueryType.SPECIFIC_ENTITY),
            ("how is payment implemented", QueryType.FUNCTIONALITY),
            ("what calls processPayment", QueryType.RELATIONSHIP),
            ("list all services", QueryType.PATTERN_SEARCH),
            ("error in checkout", QueryType.DEBUGGING),
            ("payment?", QueryType.EXPLORATORY),
            ("PaymentService", QueryType.SPECIFIC_ENTITY),
        ],
    )
    def test_query_type(self, analyzer, query, expected):
        assert analyzer.analyze(query).query_type == expected

    @pytest.mark.parametrize(
        "query,expected",
        [
            ("payment class", QueryIntent.FIND_CLASS),
            ("method to save user", QueryIntent.FIND_METHOD),
            ("payment package", QueryIntent.FIND_PACKAGE),
            ("payment implementation", QueryIntent.FIND_IMPLEMENTATION),
            ("related to billing", QueryIntent.FIND_RELATED),
            ("checkout flow", QueryIntent.UNDERSTAND_FLOW),
            ("explore orders", QueryIntent.EXPLORE_DOMAIN),
        ],
    )
    def test_intent(self, analyzer, query, expected):
        assert analyzer.analyze(query).intent == expected

    def test_constraints(self, analyzer):
        constraints = analyzer.analyze("public abstract payment handlers not test").constraints

        assert constraints.required_types == {"abstract"}
        assert constraints.required_modifiers == {"public"}
        assert constraints.exclude_patterns == ["*Test*"]

    def test_negated_words_are_not_required(self, analyzer):
        constraints = analyzer.analyze("services not interface without static").constraints

        assert constraints.required_types == set()
        assert constraints.required_modifiers == set()
        assert constraints.exclude_patterns == ["*interface*", "*Static*"]

    def test_negation_only_covers_next_word(self, analyzer):
        constraints = analyzer.analyze("public interface not abstract").constraints

        assert constraints.required_types == {"interface"}
        assert constraints.required_modifiers == {"public"}
        assert constraints.exclude_patterns == ["*Abstract*"]

    def test_confidence_in_range(self, analyzer):
        for query in ["", "the a an", "PaymentService class method", "find all get* in com.shop"]:
            assert 0.1 <= analyzer.analyze(query).confidence <= 1.0

    def test_blank_query(self, analyzer):
        context = analyzer.analyze(None)

        assert context.tokens == []
        assert context.normalized_query == ""
