import json

import pytest

from protection.store import DEFAULT_USER_RULES, JsonRuleStore, install_default_rules, parse_rules
from protection.types import Effect, ProtectionRule, Scope, Tier


def test_add_and_remove_persist_per_tier(tmp_path):
    system_path = tmp_path / "system.json"
    user_path = tmp_path / "user" / "rules.json"
    store = JsonRuleStore(system_path=system_path, user_path=user_path)

    user_rule = ProtectionRule(Scope.FILES, "*.kdbx", description="password vault")
    system_rule = ProtectionRule(Scope.PACKAGES, "openssh-server", tier=Tier.SYSTEM)
    assert store.add(user_rule) is True
    assert store.add(user_rule) is False
    assert store.add(system_rule) is True

    payload = json.loads(user_path.read_text(encoding="utf-8"))
    assert payload["tier"] == "user"
    assert payload["rules"] == [{"scope": "files", "pattern": "*.kdbx", "effect": "protect", "description": "password vault"}]

    reopened = JsonRuleStore(system_path=system_path, user_path=user_path)
    assert reopened.rules(Tier.SYSTEM) == [system_rule]
    assert set(reopened.rules()) == {user_rule, system_rule}

    assert reopened.remove(user_rule) is True
    assert reopened.remove(user_rule) is False
    assert reopened.rules(Tier.USER) == []


def test_malformed_entries_are_reported_and_skipped(tmp_path):
    user_path = tmp_path / "rules.json"
    user_path.write_text(
        json.dumps(
            {
                "version": 1,
                "rules": [
                    {"scope": "files", "pattern": "secret.txt"},
                    {"scope": "galaxies", "pattern": "andromeda"},
                    {"scope": "files", "pattern": ""},
                    "not-an-object",
                ],
            }
        ),
        encoding="utf-8",
    )
    store = JsonRuleStore(system_path=None, user_path=user_path)
    assert [rule.pattern for rule in store.rules()] == ["secret.txt"]
    assert len(store.problems()) == 3


def test_invalid_json_is_a_problem_not_a_crash(tmp_path):
    user_path = tmp_path / "rules.json"
    user_path.write_text("{not json", encoding="utf-8")
    store = JsonRuleStore(system_path=None, user_path=user_path)
    assert store.rules() == []
    assert "invalid JSON" in store.problems()[0]


def test_system_tier_without_path_cannot_be_written(tmp_path):
    store = JsonRuleStore(system_path=None, user_path=tmp_path / "rules.json")
    with pytest.raises(ValueError):
        store.add(ProtectionRule(Scope.SERVICES, "nginx", tier=Tier.SYSTEM))


def test_install_default_rules_is_idempotent(tmp_path):
    store = JsonRuleStore(system_path=None, user_path=tmp_path / "rules.json")
    assert install_default_rules(store) == len(DEFAULT_USER_RULES)
    assert install_default_rules(store) == 0
    allows = [rule for rule in store.rules() if rule.effect is Effect.ALLOW]
    assert any(rule.pattern == "*.swp" for rule in allows)


def test_parse_rules_assigns_tier():
    rules, problems = parse_rules([{"scope": "services", "pattern": "docker", "effect": "allow"}], tier=Tier.SYSTEM)
    assert problems == []
    assert rules[0].tier is Tier.SYSTEM
    assert rules[0].effect is Effect.ALLOW


def test_export_then_import_into_another_store(tmp_path):
    source = JsonRuleStore(system_path=None, user_path=tmp_path / "a.json")
    source.add(ProtectionRule(Scope.DIRECTORIES, "~/photos"))
    exported = source.export(Tier.USER)

    target = JsonRuleStore(system_path=None, user_path=tmp_path / "b.json")
    added, problems = target.import_rules(exported, tier=Tier.USER)
    assert (added, problems) == (1, [])
    assert target.rules() == source.rules()
