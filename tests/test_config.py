"""Tests for configuration, logging and the error taxonomy."""

import json
import logging
from pathlib import Path

import pytest

from prism.config import DEFAULT_CHAIN_ID, DEFAULT_PROGRAM_SEED, PrismConfig
from prism.errors import (
    IndeterminateError,
    InvalidInputError,
    InvalidKeyError,
    PrismError,
    RejectedError,
    RejectionReason,
)
from prism.logging_config import StructuredFormatter, configure_logging, short


ENV_KEYS = (
    "PRISM_RPC_URL", "PRISM_PRIVATE_KEY", "PRISM_REGISTRY_ADDRESS", "PRISM_CHAIN_ID",
    "PRISM_PROGRAM_SEED", "ARCIUM_MXE_ADDRESS", "ARCIUM_CLUSTER_ID", "PRISM_CIRCUIT_DIR",
    "PRISM_ALLOW_SIMULATION", "PRISM_LOG_LEVEL", "PRISM_LOG_JSON",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        # setenv first so teardown also removes keys loaded from a .env file
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


class TestFromMapping:
    def test_defaults(self) -> None:
        config = PrismConfig.from_mapping({})
        assert config.chain_id == DEFAULT_CHAIN_ID
        assert config.program_seed == DEFAULT_PROGRAM_SEED
        assert config.allow_simulation is True
        assert config.log_level == "INFO"
        assert config.log_json is False
        assert config.circuit_dir is None
        assert not config.mpc_configured
        assert not config.ledger_configured

    def test_values(self) -> None:
        config = PrismConfig.from_mapping({
            "PRISM_RPC_URL": "http://localhost:8545",
            "PRISM_PRIVATE_KEY": "0x" + "11" * 32,
            "PRISM_REGISTRY_ADDRESS": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
            "PRISM_CHAIN_ID": "31337",
            "ARCIUM_MXE_ADDRESS": "0x" + "22" * 32,
            "ARCIUM_CLUSTER_ID": "cluster-1",
            "PRISM_CIRCUIT_DIR": "circuits/solvency_proof",
            "PRISM_ALLOW_SIMULATION": "false",
            "PRISM_LOG_LEVEL": "debug",
            "PRISM_LOG_JSON": "1",
        })
        assert config.chain_id == 31337
        assert config.ledger_configured
        assert config.mpc_configured
        assert config.circuit_dir == Path("circuits/solvency_proof")
        assert config.allow_simulation is False
        assert config.log_level == "DEBUG"
        assert config.log_json is True

    def test_mpc_needs_both_coordinates(self) -> None:
        assert not PrismConfig.from_mapping({"ARCIUM_MXE_ADDRESS": "0xab"}).mpc_configured
        assert not PrismConfig.from_mapping({"ARCIUM_CLUSTER_ID": "c"}).mpc_configured

    def test_blank_flag_uses_default(self) -> None:
        assert PrismConfig.from_mapping({"PRISM_ALLOW_SIMULATION": " "}).allow_simulation is True


class TestFromEnv:
    def test_reads_env_file(self, clean_env, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("ARCIUM_CLUSTER_ID=from-file\nPRISM_CHAIN_ID=5\n")
        config = PrismConfig.from_env(env_file)
        assert config.cluster_id == "from-file"
        assert config.chain_id == 5

    def test_process_env_wins(self, clean_env, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("ARCIUM_CLUSTER_ID=from-file\n")
        clean_env.setenv("ARCIUM_CLUSTER_ID", "from-process")
        assert PrismConfig.from_env(env_file).cluster_id == "from-process"


class TestErrors:
    def test_to_dict(self) -> None:
        error = InvalidInputError("bad amount", details={"field": "amount"})
        assert error.to_dict() == {
            "error": "InvalidInputError",
            "code": "INVALID_INPUT",
            "message": "bad amount",
            "details": {"field": "amount"},
        }

    def test_rejected_carries_reason(self) -> None:
        error = RejectedError("taken", RejectionReason.ALREADY_EXISTS)
        assert error.reason == RejectionReason.ALREADY_EXISTS
        assert error.details["reason"] == "already_exists"
        assert error.code == "REJECTED"

    def test_hierarchy(self) -> None:
        assert issubclass(InvalidKeyError, InvalidInputError)
        assert issubclass(IndeterminateError, PrismError)

    def test_code_override(self) -> None:
        assert PrismError("x", code="CUSTOM").code == "CUSTOM"


class TestLogging:
    def test_structured_formatter(self) -> None:
        record = logging.LogRecord("prism.test", logging.INFO, __file__, 10, "hello %s", ("world",), None)
        record.extra_fields = {"context": "0xabc"}
        data = json.loads(StructuredFormatter().format(record))
        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "prism.test"
        assert data["context"] == "0xabc"

    def test_configure_replaces_handlers(self) -> None:
        configure_logging("DEBUG")
        configure_logging("WARNING", json_format=True)
        prism_logger = logging.getLogger("prism")
        assert prism_logger.level == logging.WARNING
        assert len(prism_logger.handlers) == 1
        assert isinstance(prism_logger.handlers[0].formatter, StructuredFormatter)

    def test_log_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "prism.log"
        configure_logging("INFO", log_file=str(log_file))
        logging.getLogger("prism.test").info("written")
        for handler in logging.getLogger("prism").handlers:
            handler.flush()
        assert "written" in log_file.read_text()
        configure_logging("INFO")

    def test_short(self) -> None:
        assert short("0x1234") == "0x1234"
        assert short("0x" + "ab" * 20) == "0xabababab..."
