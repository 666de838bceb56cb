"""Tests for build policy validation and command construction."""

import pytest

from soroban_sandbox_mcp.build.policy import (
    CRATE_NAME,
    SOROBAN_SDK_VERSION,
    WASM_TARGET,
    BuildCommand,
    BuildPolicy,
)


class TestValidateSource:
    """Tests for source validation."""

    def test_accepts_code(self, sample_contract):
        """Test valid source is returned unchanged."""
        assert BuildPolicy().validate_source(sample_contract) == sample_contract

    @pytest.mark.parametrize("source", [None, 42, b"fn main() {}"])
    def test_rejects_non_string(self, source):
        """Test that non-string source is rejected."""
        with pytest.raises(ValueError, match="code is required and must be a string"):
            BuildPolicy().validate_source(source)

    @pytest.mark.parametrize("source", ["", "   \n\t"])
    def test_rejects_empty(self, source):
        """Test that blank source is rejected."""
        with pytest.raises(ValueError, match="code cannot be empty"):
            BuildPolicy().validate_source(source)

    def test_size_limit_counts_bytes(self):
        """Test the limit applies to UTF-8 bytes, not characters."""
        policy = BuildPolicy(max_source_bytes=10)
        policy.validate_source("a" * 10)
        with pytest.raises(ValueError, match="limit is 10"):
            policy.validate_source("é" * 6)


class TestValidateDependencies:
    """Tests for dependency validation."""

    def test_none_is_empty(self):
        """Test that no dependencies yields an empty mapping."""
        assert BuildPolicy().validate_dependencies(None) == {}

    def test_preserves_order(self):
        """Test valid dependencies keep insertion order."""
        deps = {"zeta-crate": "1.0.0", "alpha_crate": "^2.1", "mid": "=0.9.3-beta.1"}
        assert list(BuildPolicy().validate_dependencies(deps)) == list(deps)

    @pytest.mark.parametrize(
        "name",
        ['evil"]\n[patch', "serde\n", "1starts-with-digit", "", "has space", "a" * 65, 7],
    )
    def test_rejects_bad_names(self, name):
        """Test names that could break out of the manifest."""
        with pytest.raises(ValueError, match="Invalid dependency name"):
            BuildPolicy().validate_dependencies({name: "1.0.0"})

    @pytest.mark.parametrize(
        "version",
        ['1.0"\n[patch.crates-io]', "", "latest", "1.0; rm -rf /", None],
    )
    def test_rejects_bad_versions(self, version):
        """Test versions that are not plain requirements."""
        with pytest.raises(ValueError, match="Invalid version"):
            BuildPolicy().validate_dependencies({"serde": version})

    def test_rejects_sdk_override(self):
        """Test the SDK version cannot be replaced."""
        with pytest.raises(ValueError, match="soroban-sdk"):
            BuildPolicy().validate_dependencies({"soroban-sdk": "20.0.0"})


class TestRenderManifest:
    """Tests for Cargo.toml rendering."""

    def test_default_manifest(self):
        """Test the manifest holds the crate and SDK pins."""
        manifest = BuildPolicy().render_manifest()

        assert f'name = "{CRATE_NAME}"' in manifest
        assert 'crate-type = ["cdylib", "rlib"]' in manifest
        assert f'soroban-sdk = "{SOROBAN_SDK_VERSION}"' in manifest
        assert 'features = ["testutils"]' in manifest
        assert "[profile.release]" in manifest

    def test_dependencies_follow_sdk(self):
        """Test extra dependencies are rendered after the SDK line."""
        manifest = BuildPolicy().render_manifest({"custom-crate": "1.0.0"})
        deps_section = manifest.split("[dependencies]\n", 1)[1].split("\n\n", 1)[0]

        assert deps_section.splitlines() == [
            f'soroban-sdk = "{SOROBAN_SDK_VERSION}"',
            'custom-crate = "1.0.0"',
        ]


class TestGetCommand:
    """Tests for command vectors."""

    def test_build(self):
        """Test the build command targets wasm in release mode."""
        assert BuildPolicy().get_command(BuildCommand.BUILD) == [
            "cargo", "build", "--target", WASM_TARGET, "--release",
        ]

    def test_optimize(self):
        """Test the optimizer points at the built wasm."""
        argv = BuildPolicy(stellar_path="/opt/stellar").get_command(BuildCommand.OPTIMIZE)

        assert argv[:4] == ["/opt/stellar", "contract", "optimize", "--wasm"]
        assert argv[4] == f"target/{WASM_TARGET}/release/{CRATE_NAME}.wasm"

    def test_test(self):
        """Test the test command uses the configured cargo."""
        assert BuildPolicy(cargo_path="/opt/cargo").get_command(BuildCommand.TEST) == [
            "/opt/cargo", "test",
        ]
