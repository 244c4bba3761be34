"""Tests for the payout command line interface."""

import json
from datetime import date
from types import SimpleNamespace
from uuid import uuid4

import pytest

from payout_engine.cli import PayoutCli
from payout_engine.services import (
    AutoApprovalSummary,
    PayeeSettlementResult,
    PayoutType,
    SettlementRunSummary,
)


class FakeSettlement:
    def __init__(self, clock, results=()):
        self.clock = clock
        self.results = results
        self.forced = None

    async def run_scheduled(self):
        self.forced = False
        return SettlementRunSummary(run_date=self.clock.today(), ran=False)

    async def run(self, as_of=None):
        self.forced = True
        return SettlementRunSummary(
            run_date=as_of, batch_id="batch_test", results=tuple(self.results)
        )


@pytest.fixture
def fake_services():
    built = []

    def factory(clock, results=()):
        services = SimpleNamespace(
            clock=clock,
            settlement=FakeSettlement(clock, results),
            auto_approval=SimpleNamespace(run=_auto_approval_run),
        )
        built.append(services)
        return services

    factory.built = built
    return factory


async def _auto_approval_run():
    return AutoApprovalSummary(processed=2, approved=(uuid4(), uuid4()))


class TestNextSettlementDate:

    def test_plain(self, settings, capsys):
        code = PayoutCli(settings).run(["next-settlement-date", "--from", "2024-01-08"])

        assert code == 0
        assert capsys.readouterr().out.strip() == "2024-01-19"

    def test_settlement_day_is_its_own_next(self, settings, capsys):
        PayoutCli(settings).run(["next-settlement-date", "--from", "2024-01-19"])

        assert capsys.readouterr().out.strip() == "2024-01-19"

    def test_json_with_count(self, settings, capsys):
        code = PayoutCli(settings).run(
            ["--json", "next-settlement-date", "--from", "2024-01-08", "--count", "3"]
        )

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data == {
            "from": "2024-01-08",
            "dates": ["2024-01-19", "2024-02-02", "2024-02-16"],
        }


class TestRunSettlement:

    def test_not_a_settlement_day(self, settings, fake_services, capsys):
        cli = PayoutCli(settings, services_factory=fake_services)

        code = cli.run(["run-settlement", "--as-of", "2024-01-12"])

        assert code == 0
        assert "not a settlement date" in capsys.readouterr().out
        services = fake_services.built[0]
        assert services.clock.today() == date(2024, 1, 12)
        assert services.settlement.forced is False

    def test_force(self, settings, fake_services, capsys):
        cli = PayoutCli(settings, services_factory=fake_services)

        code = cli.run(["--json", "run-settlement", "--force", "--as-of", "2024-01-12"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["ran"] is True
        assert data["run_date"] == "2024-01-12"
        assert fake_services.built[0].settlement.forced is True

    def test_failures_set_exit_code(self, settings, capsys):
        failed = PayeeSettlementResult(
            business_employee_id=uuid4(),
            payout_type=PayoutType.BIWEEKLY_BATCH,
            success=False,
            amount=2500,
            error="Insufficient platform balance",
        )

        def factory(clock):
            return SimpleNamespace(clock=clock, settlement=FakeSettlement(clock, [failed]))

        code = PayoutCli(settings, services_factory=factory).run(
            ["run-settlement", "--force", "--as-of", "2024-01-19"]
        )

        assert code == 2
        out = capsys.readouterr().out
        assert "FAILED (Insufficient platform balance)" in out
        assert "$25.00" in out


class TestOtherCommands:

    def test_run_auto_approvals(self, settings, fake_services, capsys):
        code = PayoutCli(settings, services_factory=fake_services).run(
            ["--json", "run-auto-approvals"]
        )

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["processed"] == 2
        assert data["errors"] == 0

    def test_no_command_prints_help(self, settings, capsys):
        assert PayoutCli(settings).run([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_pending_requires_payee_or_payer(self, settings):
        with pytest.raises(SystemExit):
            PayoutCli(settings).run(["pending"])

    def test_pending_rejects_bad_uuid(self, settings):
        with pytest.raises(SystemExit):
            PayoutCli(settings).run(["pending", "--payee", "not-a-uuid"])
