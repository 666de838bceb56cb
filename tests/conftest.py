"""Pytest fixtures for soroban-sandbox-mcp tests."""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from soroban_sandbox_mcp.sandbox.workspace import WorkspaceManager  # noqa: E402


@pytest.fixture
def temp_root(tmp_path):
    """Dedicated workspace root inside pytest's tmp dir."""
    root = tmp_path / "sandbox-root"
    root.mkdir()
    return root


@pytest.fixture
def manager(temp_root):
    """Workspace manager bound to temp_root."""
    return WorkspaceManager(temp_root)


@pytest.fixture
def sample_contract():
    """Minimal Soroban contract source."""
    return """#![no_std]
use soroban_sdk::{contract, contractimpl, symbol_short, vec, Env, Symbol, Vec};

#[contract]
pub struct HelloContract;

#[contractimpl]
impl HelloContract {
    pub fn hello(env: Env, to: Symbol) -> Vec<Symbol> {
        vec![&env, symbol_short!("Hello"), to]
    }
}
"""


@pytest.fixture
def sample_rustc_errors():
    """cargo build output for a contract with a syntax error."""
    return """   Compiling soroban_contract v0.1.0 (/tmp/compile-project-1700000000000-0011223344556677)
error: expected one of `!` or `::`, found `rust`
 --> src/lib.rs:1:9
  |
1 | invalid rust code
  |         ^^^^ expected one of `!` or `::`

error[E0425]: cannot find value `x` in this scope
  --> src/lib.rs:12:5
   |
12 |     x
   |     ^ not found in this scope

warning: unused variable: `env`
 --> src/lib.rs:8:18

warning: `soroban_contract` (lib) generated 1 warning
error: could not compile `soroban_contract` (lib) due to 2 previous errors; 1 warning emitted
"""
