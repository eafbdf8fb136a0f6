"""
Shared test fixtures for the Vigil test suite.

Provides sample Solidity sources, explorer payloads, an isolated
ConfigManager, and ActiveCompiler reset helpers.
"""

import json

import pytest

from core.config_manager import ConfigManager
from core.toolchain import ActiveCompiler


# ── Sample Solidity contract source ─────────────────────────────

SAMPLE_SOLIDITY = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract SimpleToken {
    mapping(address => uint256) public balances;
    uint256 public totalSupply;

    constructor(uint256 _initialSupply) {
        balances[msg.sender] = _initialSupply;
        totalSupply = _initialSupply;
    }

    function transfer(address to, uint256 amount) external {
        require(balances[msg.sender] >= amount, "insufficient balance");
        balances[msg.sender] -= amount;
        balances[to] += amount;
    }
}
"""

SAMPLE_VAULT_SOLIDITY = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

import "@openzeppelin/contracts/token/ERC20/IERC20.sol";

contract Vault {
    IERC20 public token;
    mapping(address => uint256) public deposits;

    constructor(address _token) {
        token = IERC20(_token);
    }

    function deposit(uint256 amount) external {
        deposits[msg.sender] += amount;
    }
}
"""

SAMPLE_IERC20 = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

interface IERC20 {
    function transfer(address to, uint256 amount) external returns (bool);
}
"""

MULTI_FILE_SOURCES = {
    "contracts/Vault.sol": {"content": SAMPLE_VAULT_SOLIDITY},
    "@openzeppelin/contracts/token/ERC20/IERC20.sol": {"content": SAMPLE_IERC20},
    "contracts/SimpleToken.sol": {"content": SAMPLE_SOLIDITY},
}

STANDARD_JSON_INPUT = json.dumps({
    "language": "Solidity",
    "sources": MULTI_FILE_SOURCES,
    "settings": {
        "optimizer": {"enabled": True, "runs": 200},
        "remappings": ["@openzeppelin/=lib/openzeppelin-contracts/", "ds-test/=lib/ds-test/src/"],
    },
})

# Etherscan wraps standard JSON input in an extra pair of braces
DOUBLE_BRACED_INPUT = "{" + STANDARD_JSON_INPUT + "}"

VALID_ADDRESS = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"


def explorer_response(source_code, compiler_version="v0.8.20+commit.a1b79de6", contract_name="Vault", status="1"):
    """Build a getsourcecode JSON body."""
    return {
        "status": status,
        "message": "OK" if status == "1" else "NOTOK",
        "result": [{
            "SourceCode": source_code,
            "ABI": "[]",
            "ContractName": contract_name,
            "CompilerVersion": compiler_version,
            "OptimizationUsed": "1",
            "Runs": "200",
        }],
    }


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def clean_env(monkeypatch):
    """Remove environment overrides so ConfigManager only sees the test config."""
    for name in ("ETHERSCAN_API_KEY", "BASESCAN_API_KEY", "VIGIL_STAGING_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_manager(tmp_path, clean_env):
    """ConfigManager backed by a temp config file and a temp staging dir."""
    manager = ConfigManager(config_file=str(tmp_path / "config.yaml"))
    manager.config.etherscan_api_key = "test-fake-etherscan-key"
    manager.config.staging_dir = str(tmp_path / "staging")
    return manager


@pytest.fixture
def staging_root(tmp_path):
    return tmp_path / "staging"


@pytest.fixture(autouse=True)
def fresh_active_compiler():
    """Reset the ActiveCompiler singleton around each test."""
    ActiveCompiler.reset()
    yield ActiveCompiler.get_instance()
    ActiveCompiler.reset()
