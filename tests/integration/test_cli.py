"""
Integration tests for the noteguard CLI.
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from noteguard import __version__
from noteguard.cli import app

runner = CliRunner()


@pytest.fixture
def meta_file(temp_dir: Path, sample_meta_yaml: str) -> Path:
    path = temp_dir / "meta.yaml"
    path.write_text(sample_meta_yaml)
    return path


@pytest.fixture
def big_note(temp_dir: Path) -> Path:
    path = temp_dir / "big.yaml"
    path.write_text(
        """
userId: u1
files:
  - {size: 600, md5: a, type: image/png}
  - {size: 500, md5: b, type: image/png}
"""
    )
    return path


@pytest.fixture
def small_note(temp_dir: Path) -> Path:
    path = temp_dir / "small.yaml"
    path.write_text("userId: u1\ntext: hello\n")
    return path


class TestCheckCommand:
    """Tests for `noteguard check`."""

    def test_prohibited(self, big_note: Path, meta_file: Path) -> None:
        result = runner.invoke(app, ["check", str(big_note), "--meta", str(meta_file)])
        assert result.exit_code == 1
        assert "prohibited" in result.output

    def test_allowed(self, small_note: Path, meta_file: Path) -> None:
        result = runner.invoke(app, ["check", str(small_note), "--meta", str(meta_file)])
        assert result.exit_code == 0
        assert "allowed" in result.output

    def test_json_output(self, big_note: Path, meta_file: Path) -> None:
        result = runner.invoke(
            app,
            ["check", str(big_note), "--meta", str(meta_file), "--role", "user", "--json"],
        )
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data == {"prohibited": True, "user_id": "u1", "roles": ["user"]}

    def test_roles_and_user(self, temp_dir: Path, small_note: Path) -> None:
        meta = temp_dir / "roles.yaml"
        meta.write_text(
            """
prohibitedNotePattern:
  type: and
  values:
    - {type: not, value: {type: roleAssignedOf, roleId: trusted}}
    - {type: nameIsDefault}
"""
        )
        user = temp_dir / "user.yaml"
        user.write_text("id: u1\nusername: alice\n")

        args = ["check", str(small_note), "--meta", str(meta), "--user", str(user)]
        assert runner.invoke(app, args).exit_code == 1
        assert runner.invoke(app, [*args, "--role", "trusted"]).exit_code == 0

    def test_malformed_formula_allows(self, temp_dir: Path, big_note: Path) -> None:
        """A formula node that failed to load makes every note allowed."""
        meta = temp_dir / "malformed.yaml"
        meta.write_text(
            "prohibitedNotePattern:\n"
            "  type: or\n"
            "  values:\n"
            "    - {type: hasFiles}\n"
            "    - {type: textMatchOf}\n"
        )
        result = runner.invoke(app, ["check", str(big_note), "--meta", str(meta)])
        assert result.exit_code == 0
        assert "allowed" in result.output

    def test_invalid_meta(self, temp_dir: Path, small_note: Path) -> None:
        meta = temp_dir / "bad.yaml"
        meta.write_text("browserSafeTypes: 5\n")
        result = runner.invoke(app, ["check", str(small_note), "--meta", str(meta), "--json"])
        assert result.exit_code == 2
        data = json.loads(result.stdout)
        assert data["error"] is True
        assert data["error_type"] == "FormulaValidationError"


class TestValidateCommand:
    """Tests for `noteguard validate`."""

    def test_valid(self, meta_file: Path) -> None:
        result = runner.invoke(app, ["validate", str(meta_file)])
        assert result.exit_code == 0
        assert "valid" in result.output
        assert "fileTotalSizeMoreThanOrEq" in result.output

    def test_unset(self, temp_dir: Path, unset_meta_yaml: str) -> None:
        path = temp_dir / "meta.yaml"
        path.write_text(unset_meta_yaml)
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 0
        assert "No prohibited-note formula" in result.output

    def test_unknown_kind_flagged(self, temp_dir: Path) -> None:
        path = temp_dir / "meta.yaml"
        path.write_text("prohibitedNotePattern:\n  type: hasPoll\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 0
        assert "unknown" in result.output

    def test_invalid(self, temp_dir: Path) -> None:
        path = temp_dir / "meta.yaml"
        path.write_text("browserSafeTypes: 5\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1

    def test_malformed_node_flagged(self, temp_dir: Path) -> None:
        path = temp_dir / "meta.yaml"
        path.write_text(
            "prohibitedNotePattern:\n"
            "  type: and\n"
            "  values:\n"
            "    - {type: hasText}\n"
            "    - {type: fileCountIs}\n"
        )
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "malformed" in result.output
        assert "fileCountIs" in result.output


class TestMiscCommands:
    """Tests for `noteguard kinds` and `--version`."""

    def test_kinds(self) -> None:
        result = runner.invoke(app, ["kinds"])
        assert result.exit_code == 0
        assert "hasLikelyBlurhash" in result.output
        assert "roleId" in result.output

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
