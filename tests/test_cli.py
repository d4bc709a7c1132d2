import json

import pytest

import fub_safety
from preflight.checks import StaticContextChecks
from preflight.types import CheckItem, CheckSeverity
from protection.store import JsonRuleStore
from workflow.confirm import StaticConfirmer
from workflow.service import SafetyService


@pytest.fixture
def cli(monkeypatch, work_dir, filesystem, services, packages, capsys):
    rules_path = work_dir / "rules" / "protection-rules.json"
    checks = StaticContextChecks(advanced=[CheckItem("DEV_PROJECT", CheckSeverity.WARNING, "inside a project", "/srv")])

    def build(working_dir):
        return SafetyService.from_settings(
            working_dir,
            settings={"safety": {"skip_confirmations": False}},
            filesystem=filesystem,
            services=services,
            packages=packages,
            confirmer=StaticConfirmer(False),
            checks=checks,
            rules=JsonRuleStore(system_path=None, user_path=rules_path),
        )

    monkeypatch.setattr(fub_safety, "_build_service", build)

    def invoke(*argv):
        code = fub_safety.main(["--working-dir", str(work_dir), "--json", *argv])
        out = capsys.readouterr().out
        return code, (json.loads(out) if out.strip() else None)

    return invoke


def test_run_list_show_undo(cli, sandbox):
    target = sandbox / "old.tar"
    target.write_bytes(b"tarball")

    code, declined = cli("run", "file_delete", str(target))
    assert code == 1
    assert declined["reason"] == "confirmation declined"

    code, payload = cli("run", "file_delete", str(target), "-y", "-d", "free space")
    assert code == 0
    assert not target.exists()
    op_id = payload["results"][0]["operation_id"]

    code, listed = cli("list", "-n", "5")
    assert [op["id"] for op in listed] == [op_id]

    code, shown = cli("show", op_id)
    assert shown["description"] == "free space"

    code, outcome = cli("undo", op_id)
    assert code == 0
    assert outcome["status"] == "undone"
    assert target.read_bytes() == b"tarball"


def test_partial_failure_exit_code(cli, sandbox, filesystem):
    ok = sandbox / "ok.txt"
    bad = sandbox / "bad.txt"
    ok.write_text("1", encoding="utf-8")
    bad.write_text("2", encoding="utf-8")
    filesystem.fail_names.add("bad.txt")

    code, payload = cli("run", "file_delete", str(ok), str(bad), "-y")
    assert code == 2
    assert payload["classification"] == "partial_failure"


def test_protected_target_exit_code(cli):
    code, payload = cli("run", "file_delete", "/etc/passwd", "-y", "-l", "aggressive")
    assert code == 1
    assert payload["classification"] == "blocked"


def test_modify_with_overrides(cli, sandbox):
    target = sandbox / "motd"
    target.write_text("old", encoding="utf-8")
    code, payload = cli(
        "run", "file_modify", str(target), "--content", "new", "-l", "aggressive", "--set", "require_backup=always"
    )
    assert code == 0
    assert payload["results"][0]["backup_ref"]
    assert target.read_text(encoding="utf-8") == "new"


def test_unknown_operation_id(cli):
    code, payload = cli("show", "op_missing")
    assert code == 1
    assert payload is None


def test_rules_commands(cli):
    code, added = cli("rules", "init")
    assert code == 0 and added["added"] > 0

    code, changed = cli("rules", "add", "files", "*.kdbx", "--description", "vaults")
    assert changed == {"changed": True}
    code, listed = cli("rules", "list", "--tier", "user")
    assert any(rule["pattern"] == "*.kdbx" for rule in listed)

    code, changed = cli("rules", "remove", "files", "*.kdbx")
    assert changed == {"changed": True}
    code, report = cli("rules", "validate")
    assert code == 0 and report == {"problems": []}


def test_rules_export_then_import(cli, tmp_path):
    cli("rules", "add", "directories", "/srv/photos")
    code, exported = cli("rules", "export")
    assert code == 0
    assert exported["tier"] == "user"
    assert [rule["pattern"] for rule in exported["rules"]] == ["/srv/photos"]

    dump = tmp_path / "rules-export.json"
    code, written = cli("rules", "export", "--output", str(dump))
    assert written == {"exported": 1, "path": str(dump)}
    cli("rules", "remove", "directories", "/srv/photos")

    code, imported = cli("rules", "import", str(dump))
    assert code == 0
    assert imported == {"added": 1, "problems": []}
    code, listed = cli("rules", "list")
    assert [rule["pattern"] for rule in listed] == ["/srv/photos"]

    broken = tmp_path / "broken.json"
    broken.write_text(json.dumps({"rules": [{"scope": "planets", "pattern": "mars"}]}), encoding="utf-8")
    code, report = cli("rules", "import", str(broken))
    assert code == 1
    assert report["added"] == 0 and len(report["problems"]) == 1


def test_checks_and_cleanup(cli):
    code, report = cli("checks", "/srv/app")
    assert code == 0
    assert report["warnings"] == 1

    code, report = cli("checks", "--basic-only")
    assert report["items"] == []

    code, summary = cli("cleanup")
    assert code == 0
    assert summary["journal_removed"] == []


def test_serve_refuses_public_bind(cli):
    code, payload = cli("serve", "--host", "0.0.0.0")
    assert code == 1
