import pytest

from app.features.accessibility.services.content_tree import ContentTree
from app.features.accessibility.services.rule_engine import RuleEngine, default_rule_engine
from app.features.accessibility.services.rules import ImgAltRule, finding_for

MARKUP = '<h1>Title</h1><p><img src="a.png"></p><table><tr><td>1</td></tr></table>'


class ExplodingRule:
    id = "exploding"
    name = "Always fails"
    version = 1

    def apply(self, tree):
        raise RuntimeError("boom")


class LazyExplodingRule:
    id = "lazy-exploding"
    name = "Fails after yielding"
    version = 1

    def apply(self, tree):
        for img in tree.find_tags("img"):
            yield finding_for(self, tree, img)
        raise RuntimeError("late boom")


class ParagraphRule:
    id = "every-paragraph"
    name = "Flags every paragraph"
    version = 2

    def apply(self, tree):
        for p in tree.find_tags("p"):
            yield finding_for(self, tree, p)


@pytest.fixture
def tree():
    return ContentTree.parse(MARKUP)


def test_default_engine_runs_builtin_rules(tree):
    findings = default_rule_engine().evaluate(tree)
    rule_types = {finding.rule_type for finding in findings}

    assert {"img-alt", "headings-start-at-h2", "table-header", "table-caption"} <= rule_types


def test_failing_rule_is_isolated(tree):
    engine = RuleEngine([ImgAltRule(), ExplodingRule(), ParagraphRule()])

    findings, errors = engine.evaluate_with_errors(tree)

    assert sorted(f.rule_type for f in findings) == ["every-paragraph", "img-alt"]
    assert [e.rule_id for e in errors] == ["exploding"]
    assert isinstance(errors[0].original, RuntimeError)


def test_partial_output_of_a_failing_rule_is_discarded(tree):
    engine = RuleEngine([LazyExplodingRule(), ImgAltRule()])

    findings, errors = engine.evaluate_with_errors(tree)

    assert [f.rule_type for f in findings] == ["img-alt"]
    assert [e.rule_id for e in errors] == ["lazy-exploding"]


def test_evaluate_hides_errors(tree):
    engine = RuleEngine([ExplodingRule()])
    assert engine.evaluate(tree) == []


def test_rules_run_in_id_order(tree):
    engine = RuleEngine([ParagraphRule(), ImgAltRule()])

    assert engine.rule_ids == ["every-paragraph", "img-alt"]
    assert [f.rule_type for f in engine.evaluate(tree)] == ["every-paragraph", "img-alt"]


def test_thread_pool_gives_same_findings(tree):
    serial = default_rule_engine().evaluate(tree)
    parallel = default_rule_engine(max_workers=4).evaluate(tree)

    assert [(f.rule_type, f.node_path) for f in parallel] == [(f.rule_type, f.node_path) for f in serial]


def test_register_replaces_rule_with_same_id(tree):
    class NoImages(ImgAltRule):
        def apply(self, tree):
            return []

    engine = RuleEngine([ImgAltRule()])
    engine.register_rule(NoImages())

    assert len(engine.rules) == 1
    assert isinstance(engine.get_rule("img-alt"), NoImages)
    assert engine.evaluate(tree) == []


def test_unregister_rule():
    engine = default_rule_engine()
    engine.unregister_rule("img-alt")
    engine.unregister_rule("not-registered")

    assert "img-alt" not in engine.rule_ids
    assert engine.get_rule("img-alt") is None


def test_rule_without_id_is_rejected():
    class Anonymous:
        id = ""

    with pytest.raises(ValueError):
        RuleEngine([Anonymous()])
