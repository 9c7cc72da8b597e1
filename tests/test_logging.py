"""Tests for audit and performance logging."""
import logging

import pytest

from mcp_junos_config.config_engine.coordinator import TransactionCoordinator
from mcp_junos_config.config_engine.lock import ConfigLockManager
from mcp_junos_config.config_engine.schema import Transaction
from mcp_junos_config.config_engine.statement import parse_statement
from mcp_junos_config.errors import ConfigConflict
from mcp_junos_config.utils.audit_log import (
    TransactionRecord,
    audit_logger,
    get_recent_transactions,
    log_transaction,
    setup_audit_logging,
)
from mcp_junos_config.utils.logging_config import (
    log_context,
    setup_logging,
    teardown_logging,
    timed,
    timed_section,
)


@pytest.fixture
def audit_file(tmp_path):
    path = setup_audit_logging(str(tmp_path))
    yield path
    for handler in list(audit_logger.handlers):
        handler.close()
        audit_logger.removeHandler(handler)
    audit_logger.propagate = True


class TestAuditLog:
    """Transaction audit records."""

    def test_record_written(self, audit_file):
        log_transaction(
            device_id="lab",
            operation="create",
            statements=["set vlans users vlan-id 100"],
            success=True,
            final_state="lock_released",
            resource="vlan users",
        )

        records = get_recent_transactions(log_file=str(audit_file))
        assert len(records) == 1
        assert records[0].device_id == "lab"
        assert records[0].statements == ["set vlans users vlan-id 100"]
        assert records[0].error_kind is None

    def test_error_kind(self, audit_file):
        record = log_transaction(
            device_id="lab",
            operation="update",
            statements=[],
            success=False,
            final_state="lock_released",
            error=ConfigConflict("rejected"),
        )
        assert record.error_kind == "config_conflict"
        assert record.error == "rejected"

    def test_filter_and_order(self, audit_file):
        for device in ("a", "b", "a"):
            log_transaction(device, "raw", [], True, "lock_released", comment=device)

        records = get_recent_transactions(log_file=str(audit_file), device_id="a")
        assert [r.device_id for r in records] == ["a", "a"]

        latest = get_recent_transactions(log_file=str(audit_file), limit=1)
        assert latest[0].comment == "a"

    def test_malformed_lines_skipped(self, audit_file):
        log_transaction("lab", "raw", [], True, "lock_released")
        with open(audit_file, "a", encoding="utf-8") as f:
            f.write("not json\n")

        assert len(get_recent_transactions(log_file=str(audit_file))) == 1

    def test_missing_file(self, tmp_path):
        assert get_recent_transactions(log_file=str(tmp_path / "none.log")) == []

    def test_roundtrip(self):
        record = TransactionRecord(
            timestamp="2024-01-01T00:00:00+00:00",
            device_id="lab",
            operation="delete",
            resource="vlan users",
            success=True,
            final_state="lock_released",
            attempts=2,
        )
        assert TransactionRecord.from_json(record.to_json()) == record


class TestPerfLogging:
    """Timing helpers."""

    @pytest.mark.asyncio
    async def test_timed_section_logs(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="junoscraft.perf"):
            async with timed_section("commit", device_id="lab", attempt=1):
                pass
        assert any("commit" in r.message and "OK" in r.message and "attempt=1" in r.message
                   for r in caplog.records)

    @pytest.mark.asyncio
    async def test_timed_section_failure(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="junoscraft.perf"):
            with pytest.raises(ConfigConflict):
                async with timed_section("load", device_id="lab"):
                    raise ConfigConflict("nope")
        assert any("FAIL: nope" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_timed_uses_device_id(self, caplog):
        class Session:
            device_id = "srx-edge"

            @timed("connect")
            async def connect(self):
                return True

        with caplog.at_level(logging.DEBUG, logger="junoscraft.perf"):
            assert await Session().connect()
        assert any("srx-edge" in r.message for r in caplog.records)


@pytest.fixture
def log_file(tmp_path):
    path = setup_logging(tmp_path / "junoscraft.log", level=logging.WARNING)
    yield path
    teardown_logging()


class TestLogContext:
    """Device and transaction context on log records."""

    def test_records_carry_context(self, log_file):
        logger = logging.getLogger("mcp_junos_config.config_engine.lock")
        with log_context(device="lab", tx="create vlan users"):
            logger.info("lock acquired")
        logger.info("outside")

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert any(line.endswith("| device=lab tx=create vlan users | lock acquired") for line in lines)
        assert any(line.endswith("| - | outside") for line in lines)

    def test_nested_blocks_merge(self):
        with log_context(device="lab") as outer:
            with log_context(tx="delete vlan users", attempt=None) as inner:
                assert inner == {"device": "lab", "tx": "delete vlan users"}
            assert outer == {"device": "lab"}

    def test_setup_is_repeatable(self, log_file):
        setup_logging(log_file, level=logging.WARNING)
        package_logger = logging.getLogger("mcp_junos_config")
        owned = [h for h in package_logger.handlers if getattr(h, "junoscraft", False)]
        assert len(owned) == 2

    @pytest.mark.asyncio
    async def test_perf_line_falls_back_to_context(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="junoscraft.perf"):
            with log_context(device="lab", tx="update vlan users"):
                async with timed_section("validate"):
                    pass
        assert any(
            "validate" in r.message and "lab" in r.message and "tx=update vlan users" in r.message
            for r in caplog.records
        )

    @pytest.mark.asyncio
    async def test_transaction_logs_carry_device(self, log_file, make_session):
        session = await make_session()
        tx = Transaction(
            device_id="lab",
            statements=[parse_statement("set vlans users vlan-id 100")],
            operation="create",
            resource="vlan users",
        )

        await TransactionCoordinator(ConfigLockManager()).run(session, tx)

        text = log_file.read_text(encoding="utf-8")
        assert "| device=lab tx=create vlan users | Committed 1 statements" in text
