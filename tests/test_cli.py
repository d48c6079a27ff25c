import json

import pytest

from ragtrader.__main__ import build_parser, main
from ragtrader.utils.lock import LockManager


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr("ragtrader.config.load_dotenv", lambda *args, **kwargs: False)
    for name in ["ROOSTOO_API_KEY", "ROOSTOO_SECRET_KEY", "OPENAI_API_KEY", "DEEPSEEK_API_KEY"]:
        monkeypatch.delenv(name, raising=False)


def _config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"logging": {"log_dir": str(tmp_path / "logs")}}))
    return str(path)


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.mode == "serve"
    assert args.config == "config.json"
    assert args.dry_run is False


@pytest.mark.asyncio
async def test_status_mode_prints_redacted_config(tmp_path, capsys):
    code = await main(["--config", _config(tmp_path), "--mode", "status", "--dry-run"])

    assert code == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed["trading"]["dry_run"] is True
    assert printed["exchange"]["api_key_set"] is False


@pytest.mark.asyncio
async def test_trading_mode_without_credentials_exits_nonzero(tmp_path):
    code = await main(["--config", _config(tmp_path), "--mode", "once", "--lock-file", str(tmp_path / "x.lock")])

    assert code == 1
    assert not (tmp_path / "x.lock").exists()


def test_lock_manager_blocks_when_owner_alive(tmp_path, monkeypatch):
    path = tmp_path / "bot.lock"
    path.write_text(json.dumps({"pid": 424242}))
    monkeypatch.setattr(LockManager, "is_pid_running", staticmethod(lambda pid: True))

    lock = LockManager(str(path))

    assert lock.acquire() is False
    assert json.loads(path.read_text())["pid"] == 424242


def test_lock_manager_replaces_stale_lock(tmp_path, monkeypatch):
    path = tmp_path / "bot.lock"
    path.write_text(json.dumps({"pid": 424242}))
    monkeypatch.setattr(LockManager, "is_pid_running", staticmethod(lambda pid: False))

    lock = LockManager(str(path))

    assert lock.acquire() is True
    lock.release()
    assert not path.exists()
