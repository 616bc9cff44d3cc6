"""
Tests for workflow admission rules and the rule expression compiler.
"""

import pytest
from pydantic import ValidationError

from ciflow.core.models import Event, EventSource
from ciflow.core.services.rules import (
    DEFAULT_RULES,
    Rule,
    RuleEvaluator,
    RuleExpressionError,
    RuleWhen,
    admit,
    compile_expression,
    first_match,
)


BRANCHES = ["main", "feature/x", "release/1.0", ""]


class TestDefaultRules:
    """The built-in rule set: merge requests and the default branch."""

    def test_merge_request_on_feature_branch_is_admitted(self):
        event = Event(source=EventSource.MERGE_REQUEST, branch="feature/x")
        assert admit(event, DEFAULT_RULES) is True

    def test_push_to_default_branch_is_admitted(self):
        event = Event(source=EventSource.PUSH, branch="main", default_branch="main")
        assert admit(event, DEFAULT_RULES) is True

    def test_push_to_feature_branch_is_rejected(self):
        event = Event(source=EventSource.PUSH, branch="feature/x", default_branch="main")
        assert admit(event, DEFAULT_RULES) is False

    @pytest.mark.parametrize("branch", BRANCHES)
    def test_merge_requests_always_admitted(self, branch):
        event = Event(source="merge_request_event", branch=branch, default_branch="main")
        assert admit(event, DEFAULT_RULES)

    @pytest.mark.parametrize("source", list(EventSource))
    def test_default_branch_admitted_for_every_source(self, source):
        event = Event(source=source, branch="trunk", default_branch="trunk")
        assert admit(event, DEFAULT_RULES)

    @pytest.mark.parametrize("source", [s for s in EventSource if s != EventSource.MERGE_REQUEST])
    @pytest.mark.parametrize("branch", ["feature/x", "release/1.0", "develop"])
    def test_other_events_rejected(self, source, branch):
        event = Event(source=source, branch=branch, default_branch="main")
        assert not admit(event, DEFAULT_RULES)

    def test_first_match_wins(self):
        event = Event(source=EventSource.MERGE_REQUEST, branch="main", default_branch="main")
        assert first_match(event, DEFAULT_RULES) is DEFAULT_RULES[0]


class TestRuleOrdering:
    def test_when_never_rejects_before_later_rules(self):
        rules = [
            Rule(**{"if": '$CI_COMMIT_BRANCH =~ /^wip\\//', "when": "never"}),
            Rule(),
        ]
        assert not admit(Event(source="push", branch="wip/thing"), rules)
        assert admit(Event(source="push", branch="feature/thing"), rules)

    def test_empty_rule_list_rejects_everything(self):
        event = Event(source="merge_request_event", branch="main")
        assert admit(event, []) is False

    def test_rule_without_condition_always_matches(self):
        assert Rule().unconditional
        assert admit(Event(source="schedule", branch="anything"), [Rule()])

    def test_evaluator_explains_decision(self):
        evaluator = RuleEvaluator()
        admitted = evaluator.explain(Event(source="push", branch="main"))
        rejected = evaluator.explain(Event(source="push", branch="feature/x"))
        assert admitted.startswith("admitted")
        assert rejected.startswith("no rule matched")

    def test_evaluator_keeps_immutable_rules(self):
        rules = [Rule()]
        evaluator = RuleEvaluator(rules)
        rules.clear()
        assert evaluator.rules == (Rule(),)


class TestEvent:
    @pytest.mark.parametrize("raw", ["MergeRequest", "merge_request", "mr", "merge-request"])
    def test_source_aliases(self, raw):
        assert Event(source=raw, branch="x").source == EventSource.MERGE_REQUEST

    def test_event_is_immutable(self):
        event = Event(source="push", branch="main")
        with pytest.raises(ValidationError):
            event.branch = "other"

    def test_merge_request_variables_have_no_commit_branch(self):
        variables = Event(source="merge_request_event", branch="feature/x").variables()
        assert "CI_COMMIT_BRANCH" not in variables
        assert variables["CI_MERGE_REQUEST_SOURCE_BRANCH_NAME"] == "feature/x"
        assert variables["CI_COMMIT_REF_NAME"] == "feature/x"

    def test_push_variables(self):
        variables = Event(source="push", branch="dev", default_branch="main").variables()
        assert variables["CI_COMMIT_BRANCH"] == "dev"
        assert variables["CI_DEFAULT_BRANCH"] == "main"
        assert variables["CI_PIPELINE_SOURCE"] == "push"


class TestExpressions:
    @pytest.mark.parametrize(
        "expression, variables, expected",
        [
            ('$A == "x"', {"A": "x"}, True),
            ("$A == 'x'", {"A": "y"}, False),
            ('$A != "x"', {"A": "y"}, True),
            ("$A == $B", {"A": "1", "B": "1"}, True),
            ("${A} == $B", {"A": "1", "B": "2"}, False),
            ("$A == null", {}, True),
            ("$A != null", {"A": ""}, True),
            ("$A", {"A": "set"}, True),
            ("$A", {"A": ""}, False),
            ("$A", {}, False),
            ("$A =~ /^rel/", {"A": "release"}, True),
            ("$A =~ /^REL/i", {"A": "release"}, True),
            ("$A !~ /^rel/", {"A": "main"}, True),
            ("$A =~ /x/", {}, False),
            ('$A == "1" && $B == "2"', {"A": "1", "B": "2"}, True),
            ('$A == "1" && $B == "2"', {"A": "1", "B": "3"}, False),
            ('$A == "1" || $B == "2"', {"A": "0", "B": "2"}, True),
            ('$A == "1" || $B == "2" && $C', {"A": "1"}, True),
            ('($A == "1" || $B == "2") && $C', {"A": "1"}, False),
            ('$A == "with \\"quote\\""', {"A": 'with "quote"'}, True),
        ],
    )
    def test_evaluate(self, expression, variables, expected):
        assert compile_expression(expression).evaluate(variables) is expected

    @pytest.mark.parametrize(
        "expression",
        ["", "$A ==", '$A == "x" &&', "($A", "$A =~ \"x\"", "A == 1", "$A == /x/", "$A =~ /(/"],
    )
    def test_syntax_errors(self, expression):
        with pytest.raises(RuleExpressionError):
            compile_expression(expression)

    def test_invalid_rule_is_rejected_at_construction(self):
        with pytest.raises(ValidationError):
            Rule(**{"if": "$CI_COMMIT_BRANCH =="})

    def test_rule_when_values(self):
        assert Rule(when="never").when == RuleWhen.NEVER
        with pytest.raises(ValidationError):
            Rule(when="manual")
