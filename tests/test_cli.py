import asyncio
import json

import pytest

from licensedb.__main__ import main
from licensedb.store import open_store


@pytest.fixture
def data_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VERIFY_SETTLE_DELAY", "0")
    monkeypatch.setenv("VERIFY_RETRY_DELAY", "0")
    path = str(tmp_path / "cli.db")

    async def seed():
        async with open_store(path) as store:
            return await store.add_user(name="Alice", email="alice@example.com", product="Yearly Plan")

    return path, asyncio.run(seed())


def run_cli(capsys, *argv):
    with pytest.raises(SystemExit) as excinfo:
        main(list(argv))
    return excinfo.value.code, capsys.readouterr().out


def test_regenerate_then_verify(data_file, capsys) -> None:
    path, user_id = data_file

    status, out = run_cli(capsys, "--data-file", path, "regenerate", str(user_id))
    assert status == 0
    codes = json.loads(out)
    assert codes["adminCode"].startswith("ADM-")

    status, out = run_cli(capsys, "--data-file", path, "verify", codes["viewerCode"])
    assert status == 0
    result = json.loads(out)
    assert result["role"] == "viewer"
    assert result["tier"] == "Pro-12"


def test_verify_unknown_code_exits_nonzero(data_file, capsys) -> None:
    path, _ = data_file

    status, out = run_cli(capsys, "--data-file", path, "verify", "ADM-NOPE0000")

    assert status == 1
    assert json.loads(out) == {"ok": False, "message": "INVALID"}


def test_regenerate_unknown_user(data_file, capsys) -> None:
    path, _ = data_file

    status, _ = run_cli(capsys, "--data-file", path, "regenerate", "999")

    assert status == 1


def test_stats_and_export_import(data_file, capsys, tmp_path) -> None:
    path, _ = data_file
    dump = str(tmp_path / "dump.json")

    status, out = run_cli(capsys, "--data-file", path, "stats")
    assert status == 0
    assert json.loads(out)["total_users"] == 1

    assert run_cli(capsys, "--data-file", path, "export", dump)[0] == 0

    restored = str(tmp_path / "restored.db")
    status, out = run_cli(capsys, "--data-file", restored, "import", dump)
    assert status == 0
    assert json.loads(out) == {"users": 1}
