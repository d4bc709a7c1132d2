import os

import pytest

from journal.types import OperationType
from protection.engine import ProtectionEngine, match_path, pattern_below
from protection.store import InMemoryRuleStore
from protection.types import Effect, ProtectionRule, Scope, Tier, VerdictKind
from workflow.levels import AGGRESSIVE, CONSERVATIVE, STANDARD


def _engine(rules, filesystem, services, packages):
    return ProtectionEngine(InMemoryRuleStore(rules), filesystem=filesystem, services=services, packages=packages)


@pytest.mark.parametrize("level", [CONSERVATIVE, STANDARD, AGGRESSIVE])
@pytest.mark.parametrize("target", ["/etc", "/etc/passwd", "/usr/bin/python3", "/", "/home", "/boot/vmlinuz"])
def test_critical_paths_are_always_protected(filesystem, services, packages, level, target):
    engine = _engine([], filesystem, services, packages)
    [verdict] = engine.validate([target], OperationType.FILE_DELETE, level)
    assert verdict.kind is VerdictKind.PROTECTED
    assert verdict.critical is True
    assert verdict.blocking is True


def test_symlink_into_critical_tree_is_protected(sandbox, filesystem, services, packages):
    link = sandbox / "sneaky"
    os.symlink("/etc/hostname", link)
    engine = _engine([], filesystem, services, packages)
    [verdict] = engine.validate([str(link)], OperationType.FILE_DELETE, AGGRESSIVE)
    assert verdict.critical
    assert verdict.blocking


def test_user_rule_blocks_unless_level_overrides(sandbox, filesystem, services, packages):
    target = sandbox / "notes.txt"
    target.write_text("keep", encoding="utf-8")
    rule = ProtectionRule(Scope.FILES, "notes.txt", tier=Tier.USER)
    engine = _engine([rule], filesystem, services, packages)

    [standard] = engine.validate([str(target)], OperationType.FILE_DELETE, STANDARD)
    assert standard.kind is VerdictKind.PROTECTED
    assert standard.blocking
    assert standard.rule == rule

    [aggressive] = engine.validate([str(target)], OperationType.FILE_DELETE, AGGRESSIVE)
    assert aggressive.kind is VerdictKind.PROTECTED
    assert aggressive.overridden
    assert not aggressive.blocking


def test_system_protect_beats_user_allow(sandbox, filesystem, services, packages):
    target = sandbox / "debug.log"
    target.write_text("x", encoding="utf-8")
    rules = [
        ProtectionRule(Scope.FILES, "*.log", tier=Tier.USER, effect=Effect.ALLOW),
        ProtectionRule(Scope.DIRECTORIES, str(sandbox), tier=Tier.SYSTEM),
    ]
    engine = _engine(rules, filesystem, services, packages)
    [verdict] = engine.validate([str(target)], OperationType.FILE_DELETE, CONSERVATIVE)
    assert verdict.kind is VerdictKind.PROTECTED
    assert verdict.rule.tier is Tier.SYSTEM


def test_allow_rule_marks_verdict(sandbox, filesystem, services, packages):
    target = sandbox / "build.tmp"
    target.write_text("x", encoding="utf-8")
    engine = _engine([ProtectionRule(Scope.FILES, "*.tmp", effect=Effect.ALLOW)], filesystem, services, packages)
    [verdict] = engine.validate([str(target)], OperationType.FILE_DELETE, STANDARD)
    assert verdict.kind is VerdictKind.ALLOWED
    assert verdict.allow_matched


def test_missing_and_existing_targets(sandbox, filesystem, services, packages):
    engine = _engine([], filesystem, services, packages)
    [missing] = engine.validate([str(sandbox / "nope")], OperationType.FILE_DELETE, STANDARD)
    assert missing.kind is VerdictKind.NOT_FOUND

    [existing] = engine.validate([str(sandbox)], OperationType.DIRECTORY_CREATE, STANDARD)
    assert existing.kind is VerdictKind.NOT_FOUND
    assert "already exists" in existing.reason

    [fresh] = engine.validate([str(sandbox / "new")], OperationType.DIRECTORY_CREATE, STANDARD)
    assert fresh.kind is VerdictKind.ALLOWED


def test_services_and_packages(filesystem, services, packages):
    rules = [ProtectionRule(Scope.SERVICES, "ngin*"), ProtectionRule(Scope.PACKAGES, "htop")]
    engine = _engine(rules, filesystem, services, packages)

    verdicts = engine.validate(["ssh.service", "nginx.service", "cups", "bluetooth", "ghost"],
                               OperationType.SERVICE_STOP, STANDARD)
    kinds = [verdict.kind for verdict in verdicts]
    assert kinds == [
        VerdictKind.PROTECTED,
        VerdictKind.PROTECTED,
        VerdictKind.ALLOWED,
        VerdictKind.NOT_FOUND,
        VerdictKind.NOT_FOUND,
    ]
    assert verdicts[0].critical and not verdicts[1].critical
    assert "not running" in verdicts[3].reason

    pkg = engine.validate(["libc6:amd64", "htop", "nginx", "absent-pkg"], OperationType.PACKAGE_REMOVE, AGGRESSIVE)
    assert pkg[0].blocking and pkg[0].critical
    assert pkg[1].overridden and not pkg[1].blocking
    assert pkg[2].kind is VerdictKind.ALLOWED
    assert pkg[3].kind is VerdictKind.NOT_FOUND


@pytest.mark.parametrize(
    "pattern,path,expected",
    [
        (".bashrc", "/home/u/.bashrc", True),
        ("./.bashrc", "/home/u/.bashrc", True),
        ("*.log", "/var/tmp/app/error.log", True),
        ("*.log", "/var/tmp/app/error.log.1", False),
        ("/srv/projects", "/srv/projects/app/main.py", True),
        ("/srv/projects", "/srv/projects2/main.py", False),
        ("/srv/*/cache", "/srv/app/cache", True),
        ("node_modules", "/srv/app/node_modules", True),
    ],
)
def test_match_path(pattern, path, expected):
    assert match_path(pattern, path) is expected


def test_deleting_an_ancestor_of_a_protected_path_is_blocked(sandbox, filesystem, services, packages):
    ssh = sandbox / "home" / ".ssh"
    ssh.mkdir(parents=True)
    (ssh / "id_rsa").write_text("key", encoding="utf-8")
    (sandbox / "home" / "docs").mkdir()
    secrets = sandbox / "app" / "secrets"
    secrets.mkdir(parents=True)
    rules = [
        ProtectionRule(Scope.DIRECTORIES, str(ssh)),
        ProtectionRule(Scope.FILES, str(sandbox / "*" / "secrets" / "*.key")),
    ]
    engine = _engine(rules, filesystem, services, packages)

    home, docs, app = engine.validate(
        [str(sandbox / "home"), str(sandbox / "home" / "docs"), str(sandbox / "app")],
        OperationType.FILE_DELETE,
        STANDARD,
    )
    assert home.blocking
    assert home.reason.startswith(f"contains protected {ssh}")
    assert home.rule == rules[0]
    assert docs.kind is VerdictKind.ALLOWED
    assert app.blocking
    assert app.rule == rules[1]

    [aggressive] = engine.validate([str(sandbox / "home")], OperationType.FILE_DELETE, AGGRESSIVE)
    assert aggressive.overridden
    assert not aggressive.blocking


def test_contained_allow_rule_does_not_block(sandbox, filesystem, services, packages):
    (sandbox / "build" / "tmp").mkdir(parents=True)
    rule = ProtectionRule(Scope.DIRECTORIES, str(sandbox / "build" / "tmp"), effect=Effect.ALLOW)
    engine = _engine([rule], filesystem, services, packages)
    [verdict] = engine.validate([str(sandbox / "build")], OperationType.FILE_DELETE, STANDARD)
    assert verdict.kind is VerdictKind.ALLOWED


@pytest.mark.parametrize(
    "pattern,root,expected",
    [
        ("/home/u/.ssh", "/home/u", True),
        ("/home/u/.ssh", "/home/u/.ssh", False),
        ("/home/u/.ssh", "/home/u2", False),
        ("/srv/*/cache", "/srv/app", True),
        ("/srv/*/cache", "/srv/app/cache", False),
        ("/srv/*/cache", "/opt", False),
        ("*.kdbx", "/home/u", False),
    ],
)
def test_pattern_below(pattern, root, expected):
    assert pattern_below(pattern, root) is expected
