"""Tests for the platform capture bridges.

Host automation is never started; ``subprocess.run`` is patched.
"""

import json
import os
import subprocess
from unittest.mock import patch

import pytest

from shapeshelf.capture.bridge import (
    MacAppleScriptBridge,
    UnsupportedPlatformBridge,
    WindowsPowerShellBridge,
    get_platform_bridge,
    ps_literal,
)

RUN = "shapeshelf.capture.bridge.subprocess.run"


def completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def windows_bridge(paths):
    return WindowsPowerShellBridge(paths, timeout=10.0)


class TestWindowsBridge:
    """Tests for WindowsPowerShellBridge."""

    def test_parses_json_line(self, windows_bridge):
        """The JSON line is the payload; other lines are kept as logs."""
        payload = {"name": "Arrow1", "type": 39, "left": 1.0, "top": 2.0, "width": 3.0, "height": 1.0}
        stdout = "STEP1: Getting PowerPoint\nSTEP5: Done\n" + json.dumps(payload) + "\n"

        with patch(RUN, return_value=completed(stdout)) as run:
            result = windows_bridge.capture_selection()

        assert result.success
        assert result.shape.name == "Arrow1"
        assert result.shape.type == 39
        assert result.shape.position.y == 2.0
        assert result.logs == ["STEP1: Getting PowerPoint", "STEP5: Done"]
        assert run.call_args.kwargs["timeout"] == 10.0

    def test_error_line(self, windows_bridge):
        stdout = "STEP1: Getting PowerPoint\nERROR:No shape selected (Selection.Type=0).\n"
        with patch(RUN, return_value=completed(stdout, returncode=1)):
            result = windows_bridge.capture_selection()

        assert not result.success
        assert result.error == "No shape selected (Selection.Type=0)."

    def test_nonzero_exit_without_error_line(self, windows_bridge):
        with patch(RUN, return_value=completed("", returncode=2, stderr="boom")):
            result = windows_bridge.capture_selection()
        assert result.error == "PowerShell failed with code 2. boom"

    def test_no_json(self, windows_bridge):
        with patch(RUN, return_value=completed("STEP1: Getting PowerPoint\n")):
            result = windows_bridge.capture_selection()
        assert result.error == "No JSON data in PowerShell output"

    def test_invalid_json(self, windows_bridge):
        with patch(RUN, return_value=completed("{not json\n")):
            result = windows_bridge.capture_selection()
        assert result.error.startswith("Failed to parse JSON")

    def test_timeout_reports_last_step(self, windows_bridge):
        """A hung host yields a timed-out failure naming the last step reached."""
        error = subprocess.TimeoutExpired(
            cmd="powershell",
            timeout=10,
            output="STEP1: Getting PowerPoint\nSTEP2: Getting selection\n",
        )
        with patch(RUN, side_effect=error):
            result = windows_bridge.capture_selection()

        assert not result.success
        assert result.timed_out
        assert result.error == "Timeout after 10s. Last step: STEP2: Getting selection"

    def test_powershell_missing(self, windows_bridge):
        with patch(RUN, side_effect=FileNotFoundError("powershell")):
            result = windows_bridge.capture_selection()
        assert not result.success
        assert result.error.startswith("Failed to start PowerShell")

    def test_script_is_removed(self, windows_bridge):
        """The temporary .ps1 does not outlive the call."""
        with patch(RUN, return_value=completed("{}")) as run:
            windows_bridge.capture_selection()

        script_path = run.call_args.args[0][-1]
        assert script_path.endswith(".ps1")
        assert not os.path.exists(script_path)

    def test_build_script_placeholders(self, paths):
        """Native paths and the skip flag are substituted."""
        script = WindowsPowerShellBridge(paths, skip_native_save=True).build_script(stamp=123)

        assert "__NATIVE_PATH__" not in script
        assert "__NATIVE_RELPATH__" not in script
        assert "$skipNative = $true" in script
        assert "'native/shape_captured_123.pptx'" in script
        assert ps_literal(paths.native_dir / "shape_captured_123.pptx") in script


class TestMacBridge:
    """Tests for MacAppleScriptBridge."""

    def test_parses_pipe_fields(self):
        with patch(RUN, return_value=completed("Arrow 1|39|1.5|2|3|1|0\n")):
            result = MacAppleScriptBridge().capture_selection()

        assert result.success
        assert result.shape.name == "Arrow 1"
        assert result.shape.type == 39
        assert result.shape.size.width == 3.0

    def test_name_with_delimiter(self):
        """Shape names containing '|' are reassembled."""
        with patch(RUN, return_value=completed("A|B|1|0|0|2|2|45")):
            result = MacAppleScriptBridge().capture_selection()

        assert result.shape.name == "A|B"
        assert result.shape.rotation == 45.0

    def test_not_running(self):
        with patch(RUN, return_value=completed("", returncode=1, stderr="Microsoft PowerPoint isn't running")):
            result = MacAppleScriptBridge().capture_selection()
        assert result.error == "PowerPoint is not running"

    def test_error_prefix(self):
        with patch(RUN, return_value=completed("ERROR:No shape selected. Please select a shape in PowerPoint.")):
            result = MacAppleScriptBridge().capture_selection()
        assert result.error.startswith("No shape selected")

    def test_short_output(self):
        with patch(RUN, return_value=completed("Arrow|39")):
            result = MacAppleScriptBridge().capture_selection()
        assert result.error == "Invalid output from AppleScript"


class TestPlatformSelection:
    """Tests for get_platform_bridge."""

    @pytest.mark.parametrize(
        "platform,expected",
        [
            ("win32", WindowsPowerShellBridge),
            ("darwin", MacAppleScriptBridge),
            ("linux", UnsupportedPlatformBridge),
        ],
    )
    def test_selection(self, settings, paths, platform, expected):
        assert isinstance(get_platform_bridge(settings, paths, platform=platform), expected)

    def test_settings_are_applied(self, settings, paths):
        tuned = settings.model_copy(update={"bridge_timeout_seconds": 3.0, "skip_native_save": True})
        bridge = get_platform_bridge(tuned, paths, platform="win32")
        assert bridge.timeout == 3.0
        assert bridge.skip_native_save is True

    def test_unsupported_platform_fails(self):
        result = UnsupportedPlatformBridge("linux").capture_selection()
        assert not result.success
        assert "linux" in result.error


def test_ps_literal_escapes_quotes():
    assert ps_literal("C:\\it's here") == "'C:\\it''s here'"
