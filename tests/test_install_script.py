"""
Tests for install target preparation.
"""

import os
from unittest.mock import AsyncMock, patch

import pytest

from src.update_engine.core.errors import ValidationError
from src.update_engine.core.models import UpdateKind
from src.update_engine.operations.install_script import (
    MACOS_LABEL_PATTERN,
    WINDOWS_UPDATE_ID_PATTERN,
    build_macos_install_command,
    render_windows_install_script,
    temporary_script,
    validate_ids,
)

from tests.engine_test_helpers import DRIVER_A, DRIVER_B, DRIVER_C


class TestValidateIds:
    """Tests for validate_ids."""

    def test_guids_accepted(self):
        """Test Windows Update identities pass."""
        assert validate_ids([DRIVER_A, DRIVER_B], WINDOWS_UPDATE_ID_PATTERN) == [
            DRIVER_A,
            DRIVER_B,
        ]

    @pytest.mark.parametrize(
        "update_id",
        [
            "",
            "abc'; Remove-Item C:\\ -Recurse; '",
            "abc def",
            "$(calc)",
            "a" * 65,
        ],
    )
    def test_injection_rejected(self, update_id):
        """Test ids outside the charset are rejected."""
        with pytest.raises(ValidationError):
            validate_ids([update_id], WINDOWS_UPDATE_ID_PATTERN)

    def test_non_string_rejected(self):
        """Test non-string ids are rejected."""
        with pytest.raises(ValidationError):
            validate_ids([42], WINDOWS_UPDATE_ID_PATTERN)

    @pytest.mark.parametrize("label", ["--all", "-i", "Safari\n--all", ""])
    def test_macos_option_like_labels_rejected(self, label):
        """Test labels that could be read as options are rejected."""
        with pytest.raises(ValidationError):
            validate_ids([label], MACOS_LABEL_PATTERN)

    def test_macos_label_with_spaces(self):
        """Test ordinary labels with spaces are accepted."""
        assert validate_ids(["macOS Sonoma 14.2-23C64"], MACOS_LABEL_PATTERN)


class TestRenderWindowsInstallScript:
    """Tests for render_windows_install_script."""

    def test_only_selected_ids(self):
        """Test the script targets exactly the selected ids."""
        script = render_windows_install_script([DRIVER_B], UpdateKind.DRIVER)

        assert f"$TargetIDs = @('{DRIVER_B}')" in script
        assert DRIVER_A not in script
        assert DRIVER_C not in script
        assert "Type='Driver'" in script
        assert "__TARGET_IDS__" not in script

    def test_system_search_type(self):
        """Test system installs search software updates."""
        script = render_windows_install_script([DRIVER_A, DRIVER_C], UpdateKind.SYSTEM)

        assert f"@('{DRIVER_A}','{DRIVER_C}')" in script
        assert "Type='Software'" in script

    def test_empty_selection(self):
        """Test an empty selection is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            render_windows_install_script([], UpdateKind.DRIVER)

        assert exc_info.value.message == "No update IDs provided"


class TestBuildMacosInstallCommand:
    """Tests for build_macos_install_command."""

    def test_argument_vector(self):
        """Test labels are passed as separate arguments, never --all."""
        command = build_macos_install_command(["Safari17.2MontereyAuto-17.2"])

        assert command == ["softwareupdate", "--install", "Safari17.2MontereyAuto-17.2"]
        assert "--all" not in command

    def test_empty(self):
        """Test an empty label list is rejected."""
        with pytest.raises(ValidationError):
            build_macos_install_command([])


class TestTemporaryScript:
    """Tests for the temporary_script context manager."""

    @pytest.mark.asyncio
    async def test_removed_after_success(self, tmp_path):
        """Test the script exists inside the scope and is gone afterwards."""
        async with temporary_script("Write-Host hi", str(tmp_path)) as script_path:
            assert os.path.exists(script_path)
            with open(script_path, encoding="utf-8") as script_file:
                assert script_file.read() == "Write-Host hi"

        assert not os.path.exists(script_path)
        assert script_path.endswith(".ps1")

    @pytest.mark.asyncio
    async def test_removed_after_error(self, tmp_path):
        """Test the script is removed when the body raises."""
        captured = {}
        with pytest.raises(RuntimeError):
            async with temporary_script("Write-Host hi", str(tmp_path)) as script_path:
                captured["path"] = script_path
                raise RuntimeError("installer crashed")

        assert not os.path.exists(captured["path"])

    @pytest.mark.asyncio
    async def test_unique_names(self, tmp_path):
        """Test concurrent scopes get distinct files."""
        async with temporary_script("a", str(tmp_path), prefix="driver-update") as first:
            async with temporary_script("b", str(tmp_path), prefix="driver-update") as second:
                assert first != second
                assert os.path.basename(first).startswith("driver-update-")

    @pytest.mark.asyncio
    async def test_removal_failure_is_logged(self, tmp_path, caplog):
        """Test a cleanup failure does not replace the outcome."""
        with patch(
            "src.update_engine.operations.install_script.remove_file_async",
            AsyncMock(side_effect=PermissionError("locked")),
        ):
            async with temporary_script("x", str(tmp_path)) as script_path:
                pass

        assert "Failed to delete temporary script" in caplog.text
        os.remove(script_path)
