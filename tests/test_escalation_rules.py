"""Rule matching and precedence."""

from types import SimpleNamespace

from campusdesk.escalation.domain import EscalationRule, resolve_rule


def _ticket(**values):
    base = {"domain_id": 1, "scope_id": 10, "category_id": 3, "subcategory_id": 11}
    base.update(values)
    return SimpleNamespace(**base)


RULES = [
    EscalationRule(id=1, level=1, escalate_to="global-l1"),
    EscalationRule(id=2, level=2, escalate_to="global-l2"),
    EscalationRule(id=3, level=1, escalate_to="domain-l1", domain_id=1),
    EscalationRule(id=4, level=1, escalate_to="scope-l1", domain_id=1, scope_id=10),
    EscalationRule(id=5, level=1, escalate_to="category-l1", category_id=3),
    EscalationRule(id=6, level=1, escalate_to="subcategory-l1", subcategory_id=11),
]


def test_specificity_ranks():
    assert [rule.specificity for rule in RULES] == [0, 0, 1, 2, 3, 4]


def test_most_specific_rule_wins():
    assert resolve_rule(RULES, _ticket(), 1).id == 6
    assert resolve_rule(RULES, _ticket(subcategory_id=12), 1).id == 5
    assert resolve_rule(RULES, _ticket(subcategory_id=12, category_id=4), 1).id == 4
    assert resolve_rule(RULES, _ticket(subcategory_id=12, category_id=4, scope_id=20), 1).id == 3
    assert resolve_rule(RULES, _ticket(subcategory_id=None, category_id=None, domain_id=2), 1).id == 1


def test_rule_with_mismatched_field_does_not_match():
    rule = EscalationRule(id=9, level=1, domain_id=1, category_id=7)
    assert not rule.matches(_ticket())
    assert rule.matches(_ticket(category_id=7))


def test_exact_level_preferred_over_lower_level():
    rules = [
        EscalationRule(id=1, level=1, category_id=3, escalate_to="warden"),
        EscalationRule(id=2, level=2, category_id=3, escalate_to="dean"),
    ]
    assert resolve_rule(rules, _ticket(), 2).escalate_to == "dean"
    assert resolve_rule(rules, _ticket(), 1).escalate_to == "warden"


def test_falls_back_to_highest_level_below():
    rules = [
        EscalationRule(id=1, level=1, escalate_to="warden"),
        EscalationRule(id=2, level=2, escalate_to="dean"),
    ]
    assert resolve_rule(rules, _ticket(), 5).escalate_to == "dean"


def test_rules_above_the_level_are_ignored():
    rules = [EscalationRule(id=1, level=3, escalate_to="registrar")]
    assert resolve_rule(rules, _ticket(), 2) is None


def test_ties_resolve_to_lowest_id():
    rules = [
        EscalationRule(id=8, level=1, category_id=3, escalate_to="b"),
        EscalationRule(id=4, level=1, category_id=3, escalate_to="a"),
    ]
    assert resolve_rule(rules, _ticket(), 1).id == 4


def test_no_rules():
    assert resolve_rule([], _ticket(), 1) is None
