"""
CLI commands driven through click's CliRunner with an in-memory adapter.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from govproxy.chain.adapter import DispatchFailure
from govproxy.cli.main import cli
from govproxy.exceptions import ChainConnectionError
from govproxy.governance.types import (
    Casting,
    ClassLock,
    Conviction,
    Delegating,
    PriorLock,
)

from conftest import (
    DELEGATE_TARGET,
    KUSAMA_ACCOUNT,
    PROXY_ADDRESS,
    FakeChainAdapter,
    ScriptedStream,
    finalized,
    in_block,
    success_stream,
)

KSM = 10**12


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ("GOVPROXY_CONFIG", "GOVPROXY_NETWORK", "GOVPROXY_ENDPOINT", "GOVPROXY_TX_TIMEOUT"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GOVPROXY_BATCH_DELAY", "0")


@pytest.fixture
def keyfile(tmp_path):
    path = tmp_path / "proxy.txt"
    path.write_text("bottom drive obey lake curtain smoke basket hold race lonely fit walk\n")
    return str(path)


def _records():
    return {
        2: Delegating(target=DELEGATE_TARGET, balance=650 * KSM, conviction=Conviction.LOCKED_6X),
        14: Casting(votes=frozenset({88, 12})),
        0: Casting(prior_lock=PriorLock(1000, 5 * KSM)),
        1: Casting(prior_lock=PriorLock(5000, 2 * KSM)),
    }


def invoke(adapter, args, input=None):
    with patch("govproxy.cli.main.make_adapter", return_value=adapter) as factory:
        result = CliRunner().invoke(cli, args, input=input)
    return result, factory


class TestConvictions:

    def test_table(self):
        result = CliRunner().invoke(cli, ["convictions"])
        assert result.exit_code == 0
        assert "Locked6x" in result.output
        assert "224 days" in result.output
        assert "896 days" in result.output


class TestStatus:

    def test_shows_state(self):
        adapter = FakeChainAdapter(records=_records(), class_locks=[ClassLock(2, 650 * KSM)])
        result, _ = invoke(adapter, ["status", KUSAMA_ACCOUNT])

        assert result.exit_code == 0, result.output
        assert "Delegations (1 tracks)" in result.output
        assert "Track 2 (Staking Admin)" in result.output
        assert "650.0000 KSM" in result.output
        assert "Refs #12, #88" in result.output
        assert "Expired Locks" in result.output
        assert "Pending Locks" in result.output
        assert adapter.disconnects == 1

    def test_query_failure_exits_nonzero_and_disconnects(self):
        adapter = FakeChainAdapter()
        adapter.fail_query = "voting"
        result, _ = invoke(adapter, ["status", KUSAMA_ACCOUNT])
        assert result.exit_code == 1
        assert "voting failed" in result.output
        assert adapter.disconnects == 1

    def test_connection_failure(self):
        adapter = FakeChainAdapter()

        async def refuse():
            raise ChainConnectionError("Could not connect")

        adapter.connect = refuse
        result, _ = invoke(adapter, ["status", KUSAMA_ACCOUNT])
        assert result.exit_code == 1
        assert "Could not connect" in result.output

    def test_unknown_network(self):
        result = CliRunner().invoke(cli, ["--network", "westend", "status", KUSAMA_ACCOUNT])
        assert result.exit_code == 2

    def test_endpoint_override(self):
        adapter = FakeChainAdapter()
        result, factory = invoke(adapter, ["-n", "polkadot", "-e", "ws://127.0.0.1:9944", "status", KUSAMA_ACCOUNT])
        assert result.exit_code == 0, result.output
        network = factory.call_args.args[0]
        assert network.name == "polkadot"
        assert network.rpc_endpoint == "ws://127.0.0.1:9944"


class TestDelegate:

    BASE = ["delegate", "--account", KUSAMA_ACCOUNT, "--to", DELEGATE_TARGET,
            "--amount", "650", "--conviction", "Locked6x"]

    def test_dry_run(self):
        adapter = FakeChainAdapter()
        result, _ = invoke(adapter, self.BASE + ["--dry-run"])

        assert result.exit_code == 0, result.output
        assert "650000000000000 planck" in result.output
        assert "224 day lock" in result.output
        assert "[DRY RUN]" in result.output
        assert "Batch 4/4" in result.output
        assert adapter.broadcasts == []

    def test_selected_tracks(self):
        adapter = FakeChainAdapter()
        result, _ = invoke(adapter, self.BASE + ["--dry-run", "-t", "0", "-t", "33"])
        assert result.exit_code == 0, result.output
        assert "2 (0, 33)" in result.output
        assert "Batch 1/1" in result.output

    def test_invalid_conviction_never_connects(self):
        args = [a if a != "Locked6x" else "Locked9x" for a in self.BASE]
        result, factory = invoke(FakeChainAdapter(), args + ["--dry-run"])
        assert result.exit_code == 1
        assert "Invalid conviction" in result.output
        factory.assert_not_called()

    def test_duplicate_track(self):
        result, factory = invoke(FakeChainAdapter(), self.BASE + ["--dry-run", "-t", "1", "-t", "1"])
        assert result.exit_code == 1
        assert "Duplicate" in result.output
        factory.assert_not_called()

    def test_non_positive_amount(self):
        args = [a if a != "650" else "0" for a in self.BASE]
        result, _ = invoke(FakeChainAdapter(), args + ["--dry-run"])
        assert result.exit_code == 1

    def test_requires_key_source(self):
        result, factory = invoke(FakeChainAdapter(), self.BASE)
        assert result.exit_code == 1
        assert "--keyfile or --mnemonic" in result.output
        factory.assert_not_called()

    def test_submit_and_verify(self, keyfile):
        adapter = FakeChainAdapter()
        result, _ = invoke(adapter, self.BASE + ["--keyfile", keyfile, "--yes"])

        assert result.exit_code == 0, result.output
        assert f"Proxy account: {PROXY_ADDRESS}" in result.output
        assert len(adapter.broadcasts) == 4
        assert "Batches succeeded" in result.output
        assert "New delegations:" in result.output
        assert adapter.calls.count("block") == 2

    def test_confirmation_declined(self, keyfile):
        adapter = FakeChainAdapter()
        result, _ = invoke(adapter, self.BASE + ["--keyfile", keyfile], input="no\n")
        assert result.exit_code == 0
        assert "Aborted." in result.output
        assert adapter.broadcasts == []

    def test_confirmation_accepted(self, keyfile):
        adapter = FakeChainAdapter()
        result, _ = invoke(adapter, self.BASE + ["--keyfile", keyfile, "-t", "0"], input="yes\n")
        assert result.exit_code == 0, result.output
        assert len(adapter.broadcasts) == 1


class TestCleanup:

    def test_nothing_to_do_with_pending_hint(self, keyfile):
        adapter = FakeChainAdapter(records={1: Casting(prior_lock=PriorLock(5000, KSM))})
        result, _ = invoke(adapter, ["cleanup", "-a", KUSAMA_ACCOUNT, "-k", keyfile])

        assert result.exit_code == 0, result.output
        assert "Nothing to do!" in result.output
        assert "still pending" in result.output
        assert adapter.broadcasts == []

    def test_dry_run_lists_plan(self):
        adapter = FakeChainAdapter(records=_records())
        result, _ = invoke(adapter, ["cleanup", "-a", KUSAMA_ACCOUNT, "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Will execute 4 call(s)" in result.output
        out = result.output
        assert out.index("Undelegate from track 2") < out.index("Remove vote on referendum #12")
        assert out.index("Remove vote on referendum #88") < out.index("Unlock expired lock on track 0")
        assert adapter.broadcasts == []

    def test_unlock_only(self):
        adapter = FakeChainAdapter(records=_records())
        result, _ = invoke(adapter, ["cleanup", "-a", KUSAMA_ACCOUNT, "--dry-run", "--unlock-only"])
        assert result.exit_code == 0, result.output
        assert "Will execute 1 call(s)" in result.output
        assert "Undelegate from" not in result.output

    def test_failed_batch_is_reported_not_fatal(self, keyfile):
        records = {t: Casting(prior_lock=PriorLock(10, KSM)) for t in (0, 1, 2, 10, 11)}
        failure = DispatchFailure("ConvictionVoting", "ClassNeeded")
        adapter = FakeChainAdapter(records=records, streams=[
            ScriptedStream([in_block("0x1", failure), finalized("0x1")]),
            success_stream(),
        ])
        result, _ = invoke(adapter, ["cleanup", "-a", KUSAMA_ACCOUNT, "-k", keyfile, "-y"])

        assert result.exit_code == 0, result.output
        assert len(adapter.broadcasts) == 2
        assert "Batch 1/2: DISPATCH_FAILED: ConvictionVoting.ClassNeeded" in result.output
        assert "1/2" in result.output

    def test_declined(self, keyfile):
        adapter = FakeChainAdapter(records=_records())
        result, _ = invoke(adapter, ["cleanup", "-a", KUSAMA_ACCOUNT, "-k", keyfile], input="n\n")
        assert result.exit_code == 0
        assert "Aborted." in result.output
        assert adapter.broadcasts == []

    def test_missing_keyfile(self, tmp_path):
        result, factory = invoke(FakeChainAdapter(), ["cleanup", "-a", KUSAMA_ACCOUNT, "-k", str(tmp_path / "x")])
        assert result.exit_code == 1
        assert "Keyfile not found" in result.output
        factory.assert_not_called()
