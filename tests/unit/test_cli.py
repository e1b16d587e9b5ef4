"""
Tests for the gavel command line interface.
"""

import json
import os

import pytest
from click.testing import CliRunner

from gavel.cli import main
from gavel.cli.main import cli
from gavel.core.clock import ManualClock
from gavel.utils.logger import setup_logging


ONE_WEEK = 7 * 24 * 60 * 60
PASSWORD = "correct horse"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in list(os.environ):
        if name.startswith("GAVEL_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    yield
    # CliRunner streams are closed once a command returns
    setup_logging()


@pytest.fixture
def clock(monkeypatch):
    """Replace the wall clock the CLI opens engines with."""
    clock = ManualClock(start=1_700_000_000)
    monkeypatch.setattr(main, "SystemClock", lambda: clock)
    return clock


@pytest.fixture
def run(tmp_path):
    runner = CliRunner()
    data_dir = str(tmp_path / "data")

    def _run(*args):
        return runner.invoke(cli, ["--data-dir", data_dir, *args])

    return _run


@pytest.fixture
def deployed(run, clock):
    for name in ("admin", "alice"):
        assert run("wallet", "create", "--name", name, "--password", PASSWORD).exit_code == 0
    assert run("deploy", "--admin", "admin").exit_code == 0
    return run


@pytest.fixture
def opened(deployed):
    result = deployed(
        "init", "--wallet", "admin", "--password", PASSWORD,
        "--item", "ball:1", "--item", "book:3",
    )
    assert result.exit_code == 0, result.output
    return deployed


class TestWalletCommands:
    def test_create_and_list(self, run, tmp_path):
        result = run("wallet", "create", "--name", "alice", "--password", PASSWORD)
        assert result.exit_code == 0
        assert "✓ Wallet created: alice" in result.output

        data = json.loads((tmp_path / "data" / "wallets" / "alice.json").read_text())
        assert data["address"].startswith("0x")
        assert "encrypted_private_key" in data

        listing = run("wallet", "list")
        assert data["address"] in listing.output

    def test_wallet_without_valid_address(self, run, clock, tmp_path):
        run("wallet", "create", "--name", "admin", "--password", PASSWORD)
        wallet_path = tmp_path / "data" / "wallets" / "admin.json"
        data = json.loads(wallet_path.read_text())
        data["address"] = "0x1234"
        wallet_path.write_text(json.dumps(data))

        result = run("deploy", "--admin", "admin")
        assert result.exit_code == 1
        assert "no valid address" in result.output

    def test_duplicate_wallet(self, run):
        run("wallet", "create", "--name", "alice", "--password", PASSWORD)
        result = run("wallet", "create", "--name", "alice", "--password", PASSWORD)
        assert result.exit_code == 1
        assert "already exists" in result.output


class TestAuctionCommands:
    def test_deploy_twice(self, deployed):
        result = deployed("deploy", "--admin", "admin")
        assert result.exit_code == 1
        assert "already deployed" in result.output

    def test_show_before_deploy(self, run):
        result = run("show")
        assert result.exit_code == 1
        assert "No auction deployed" in result.output

    def test_init_and_show(self, opened, clock):
        result = opened("show")
        assert result.exit_code == 0
        assert "Phase: OPEN" in result.output
        assert "[0] ball" in result.output
        assert "[1] book" in result.output
        assert str(clock.now() + ONE_WEEK) in result.output

    def test_init_with_explicit_deadline(self, deployed, clock):
        deadline = clock.now() + 60
        result = deployed(
            "init", "--wallet", "admin", "--password", PASSWORD,
            "--item", "ball:1", "--deadline", str(deadline),
        )
        assert result.exit_code == 0
        assert "with 1 items" in result.output
        assert str(deadline) in result.output

    def test_init_duration_and_deadline_conflict(self, deployed):
        result = deployed(
            "init", "--wallet", "admin", "--password", PASSWORD,
            "--item", "ball:1", "--duration", "10", "--deadline", "10",
        )
        assert result.exit_code != 0

    def test_init_by_non_admin(self, deployed):
        result = deployed("init", "--wallet", "alice", "--password", PASSWORD, "--item", "ball:1")
        assert result.exit_code == 1
        assert "Unauthorized" in result.output

    def test_malformed_item_option(self, deployed):
        result = deployed("init", "--wallet", "admin", "--password", PASSWORD, "--item", "ball")
        assert result.exit_code != 0

    def test_wrong_password(self, deployed):
        result = deployed("init", "--wallet", "admin", "--password", "nope", "--item", "ball:1")
        assert result.exit_code == 1
        assert "wrong password" in result.output

    def test_bid(self, opened):
        result = opened("bid", "--wallet", "alice", "--password", PASSWORD, "0", "2")
        assert result.exit_code == 0
        assert "✓ Bid accepted: item 0, amount 2" in result.output

        # a second bid needs the next nonce, read back from storage
        result = opened("bid", "--wallet", "alice", "--password", PASSWORD, "0", "5")
        assert result.exit_code == 0

    def test_bid_too_low(self, opened):
        result = opened("bid", "--wallet", "alice", "--password", PASSWORD, "1", "3")
        assert result.exit_code == 1
        assert "BidTooLow" in result.output

    def test_admin_bid_rejected(self, opened):
        result = opened("bid", "--wallet", "admin", "--password", PASSWORD, "0", "2")
        assert result.exit_code == 1
        assert "Unauthorized" in result.output

    def test_winners_before_deadline(self, opened):
        result = opened("winners")
        assert result.exit_code == 1
        assert "AuctionNotEndedYet" in result.output

    def test_winners_after_deadline(self, opened, clock):
        opened("bid", "--wallet", "alice", "--password", PASSWORD, "0", "2")
        clock.increase(ONE_WEEK)

        bid = opened("bid", "--wallet", "alice", "--password", PASSWORD, "1", "9")
        assert bid.exit_code == 1
        assert "AuctionAlreadyEnded" in bid.output

        result = opened("winners", "--json")
        assert result.exit_code == 0
        report, _ = json.JSONDecoder().raw_decode(result.output[result.output.index("[\n"):])
        assert [entry["bidAmt"] for entry in report] == [2, 3]
        assert report[1]["highestBidder"] == "0x" + "00" * 20


class TestDemo:
    def test_demo_runs(self, run):
        result = run("demo")
        assert result.exit_code == 0, result.output
        assert "✓ Rejected: Unauthorized" in result.output
        assert "✅ Demo complete!" in result.output
