"""Platform capture bridges.

A bridge asks the running presentation host for the currently selected
shape and returns a CaptureResult. Host automation runs out of process
(PowerShell COM automation on Windows, AppleScript on macOS) under a hard
wall-clock timeout. Bridges never raise; every failure is reported as
``CaptureResult(success=False, error=...)``.
"""

import json
import logging
import os
import subprocess
import sys
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path

from shapeshelf.config import Settings
from shapeshelf.dsl.schema import CaptureResult, RawCapturedShape
from shapeshelf.library.paths import LibraryPaths

logger = logging.getLogger(__name__)

ERROR_PREFIX = "ERROR:"
POWERSHELL_COMMAND = ["powershell", "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-File"]


def ps_literal(value: str | Path) -> str:
    """Quote a value as a single-quoted PowerShell string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def run_powershell(script: str, timeout: float) -> subprocess.CompletedProcess:
    """Run a PowerShell script from a temporary .ps1 file.

    Args:
        script: Script source.
        timeout: Wall-clock limit in seconds. The process is killed when
            it expires.

    Returns:
        The completed process with text stdout/stderr.

    Raises:
        subprocess.TimeoutExpired: If the limit is exceeded.
        OSError: If PowerShell cannot be started.
    """
    fd, script_path = tempfile.mkstemp(prefix="shapeshelf-", suffix=".ps1")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(script)
        return subprocess.run(
            POWERSHELL_COMMAND + [script_path],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    finally:
        try:
            os.unlink(script_path)
        except OSError as e:
            logger.warning(f"Failed to delete script {script_path}: {e}")


def _output_lines(text: str | bytes | None) -> list[str]:
    if not text:
        return []
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return [line.strip() for line in text.splitlines() if line.strip()]


class CaptureBridge(ABC):
    """Source of raw shape captures."""

    @abstractmethod
    def capture_selection(self) -> CaptureResult:
        """Capture the shape currently selected in the host application."""
        pass


class SubprocessBridge(CaptureBridge):
    """Bridge that runs one external automation process per capture."""

    name = "bridge"

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    def capture_selection(self) -> CaptureResult:
        logger.info(f"Capturing selection via {self.name}")
        try:
            completed = self._run()
        except subprocess.TimeoutExpired as e:
            logs = _output_lines(e.stdout)
            last = logs[-1] if logs else "none"
            logger.warning(f"{self.name} timed out after {self.timeout:g}s")
            return CaptureResult.failure(
                f"Timeout after {self.timeout:g}s. Last step: {last}",
                logs=logs,
                timed_out=True,
            )
        except OSError as e:
            logger.warning(f"Failed to start {self.name}: {e}")
            return CaptureResult.failure(f"Failed to start {self.name}: {e}")

        result = self._parse(completed)
        if not result.success:
            logger.warning(f"Capture failed: {result.error}")
        return result

    @abstractmethod
    def _run(self) -> subprocess.CompletedProcess:
        pass

    @abstractmethod
    def _parse(self, completed: subprocess.CompletedProcess) -> CaptureResult:
        pass


# ============================================================================
# Windows
# ============================================================================

WINDOWS_CAPTURE_SCRIPT = r"""
$ErrorActionPreference = "Stop"
try {
    Write-Host "STEP1: Getting PowerPoint"
    $ppt = [Runtime.InteropServices.Marshal]::GetActiveObject("PowerPoint.Application")
    try { $ppt.DisplayAlerts = 0 } catch {}

    Write-Host "STEP2: Getting selection"
    $selection = $ppt.ActiveWindow.Selection
    if ($selection.Type -ne 2) {
        Write-Output "ERROR:No shape selected (Selection.Type=$([int]$selection.Type)). Click the shape border and select a single shape."
        exit 1
    }

    $range = $selection.ShapeRange
    $shape = $range.Item(1)
    $shapeType = [int]$shape.Type
    $isGroup = ($shapeType -eq 6) -or ($range.Count -gt 1)
    $isPicture = (-not $isGroup) -and ($shapeType -eq 13)
    if ((-not $isGroup) -and ($shapeType -eq 17)) {
        Write-Output "ERROR:Text boxes are not supported. Select a basic shape instead."
        exit 1
    }

    Write-Host "STEP3: Reading shape $($shape.Name)"
    $autoMap = @{
        1 = 'msoShapeRectangle'; 5 = 'msoShapeRoundedRectangle'; 9 = 'msoShapeOval'
        36 = 'msoShapeLeftArrow'; 37 = 'msoShapeDownArrow'; 38 = 'msoShapeUpArrow'; 39 = 'msoShapeRightArrow'
        55 = 'msoShapeChevron'; 28 = 'msoShapePlaque'
        109 = 'msoShapeFlowchartProcess'; 110 = 'msoShapeFlowchartAlternateProcess'
        111 = 'msoShapeFlowchartDecision'; 140 = 'msoShapeFlowchartCollate'
    }
    $data = @{}
    $data['isGroup'] = $isGroup
    $data['isPicture'] = $isPicture
    $data['name'] = $shape.Name
    $data['type'] = [int]$shape.AutoShapeType
    $data['autoShapeName'] = $autoMap[[int]$shape.AutoShapeType]
    $data['left'] = [math]::Round($shape.Left / 72, 3)
    $data['top'] = [math]::Round($shape.Top / 72, 3)
    $data['width'] = [math]::Round($shape.Width / 72, 3)
    $data['height'] = [math]::Round($shape.Height / 72, 3)
    $data['rotation'] = [math]::Round($shape.Rotation, 2)

    if ($isPicture) {
        try {
            $tmpPng = Join-Path $env:TEMP ("shapeshelf-cap-" + [guid]::NewGuid().ToString() + ".png")
            $p2 = $ppt.Presentations.Add(0)
            $s2 = $p2.Slides.Add(1, 12)
            $shape.Copy()
            $s2.Shapes.Paste() | Out-Null
            $s2.Export($tmpPng, 'PNG', 1600, 900)
            try { $p2.Saved = $true } catch {}
            $p2.Close()
            $data['pngTempPath'] = $tmpPng
        } catch { Write-Host "STEP3a: Picture export failed: $($_.Exception.Message)" }
    }

    if ((-not $isPicture) -and (-not $isGroup)) {
        try {
            if ($shape.Fill.Visible -ne 0) {
                $rgb = $shape.Fill.ForeColor.RGB
                $data['fillColor'] = ($rgb -band 0xFF).ToString("X2") + (($rgb -shr 8) -band 0xFF).ToString("X2") + (($rgb -shr 16) -band 0xFF).ToString("X2")
                $data['fillTransparency'] = [math]::Round($shape.Fill.Transparency, 2)
            }
        } catch {}
        try {
            if ($shape.Line.Visible -ne 0) {
                $rgb = $shape.Line.ForeColor.RGB
                $data['lineColor'] = ($rgb -band 0xFF).ToString("X2") + (($rgb -shr 8) -band 0xFF).ToString("X2") + (($rgb -shr 16) -band 0xFF).ToString("X2")
                $data['lineWeight'] = [math]::Round($shape.Line.Weight, 2)
                $data['lineTransparency'] = [math]::Round($shape.Line.Transparency, 2)
            }
        } catch {}
    }

    try {
        $adjs = @()
        for ($i = 1; $i -le $shape.Adjustments.Count; $i++) {
            $adjs += [math]::Round([double]$shape.Adjustments.Item($i), 3)
        }
        $data['adjustments'] = $adjs
    } catch {}

    $skipNative = __SKIP_NATIVE__
    if ($isGroup -or $isPicture) { $skipNative = $false }
    if (-not $skipNative) {
        try {
            Write-Host "STEP4: Saving native PPTX"
            $destPath = __NATIVE_PATH__
            $new = $ppt.Presentations.Add(0)
            $slide = $new.Slides.Add(1, 12)
            if ($isGroup) { $range.Copy() } else { $shape.Copy() }
            $slide.Shapes.Paste() | Out-Null
            $new.SaveAs($destPath, 24)
            try { $new.Saved = $true } catch {}
            $new.Close()
            $data['nativePptxRelPath'] = __NATIVE_RELPATH__
        } catch { Write-Host "STEP4e: Native save failed: $($_.Exception.Message)" }
    }

    Write-Host "STEP5: Done"
    Write-Output ($data | ConvertTo-Json -Compress)
} catch {
    Write-Output "ERROR:$($_.Exception.Message)"
    exit 1
}
"""


class WindowsPowerShellBridge(SubprocessBridge):
    """Capture through PowerPoint COM automation driven by PowerShell.

    Optionally saves the selection as a native single-slide .pptx under
    ``<root>/native/``. Groups and pictures always get a native file.
    """

    name = "PowerShell"

    def __init__(self, paths: LibraryPaths, timeout: float = 10.0, skip_native_save: bool = False) -> None:
        super().__init__(timeout)
        self.paths = paths
        self.skip_native_save = skip_native_save

    def build_script(self, stamp: int | None = None) -> str:
        """Render the capture script for one call."""
        stamp = stamp if stamp is not None else int(time.time() * 1000)
        filename = f"shape_captured_{stamp}.pptx"
        return (
            WINDOWS_CAPTURE_SCRIPT
            .replace("__SKIP_NATIVE__", "$true" if self.skip_native_save else "$false")
            .replace("__NATIVE_PATH__", ps_literal(self.paths.native_dir / filename))
            .replace("__NATIVE_RELPATH__", ps_literal(self.paths.native_relpath(filename)))
        )

    def _run(self) -> subprocess.CompletedProcess:
        return run_powershell(self.build_script(), self.timeout)

    def _parse(self, completed: subprocess.CompletedProcess) -> CaptureResult:
        lines = _output_lines(completed.stdout)
        logs = [line for line in lines if not line.startswith("{")]

        error = next((line for line in lines if line.startswith(ERROR_PREFIX)), None)
        if error is not None:
            return CaptureResult.failure(error[len(ERROR_PREFIX):].strip(), logs=logs)

        if completed.returncode != 0:
            return CaptureResult.failure(
                f"PowerShell failed with code {completed.returncode}. {completed.stderr or ''}".strip(),
                logs=logs,
            )

        json_line = next((line for line in lines if line.startswith("{")), None)
        if json_line is None:
            return CaptureResult.failure("No JSON data in PowerShell output", logs=logs)

        try:
            data = json.loads(json_line)
        except ValueError as e:
            return CaptureResult.failure(f"Failed to parse JSON: {e}", logs=logs)

        return CaptureResult(success=True, shape=RawCapturedShape.from_bridge(data), logs=logs)


# ============================================================================
# macOS
# ============================================================================

MAC_CAPTURE_SCRIPT = """
tell application "Microsoft PowerPoint"
  if (count of presentations) = 0 then
    return "ERROR:No presentation is open"
  end if
  tell active presentation
    if (count of (get selection shapes)) = 0 then
      return "ERROR:No shape selected. Please select a shape in PowerPoint."
    end if
    set selectedShape to first item of (get selection shapes)
    set shapeName to name of selectedShape
    set shapeType to shape type of selectedShape as integer
    set leftInches to ((left position of selectedShape) / 72) as text
    set topInches to ((top position of selectedShape) / 72) as text
    set widthInches to ((width of selectedShape) / 72) as text
    set heightInches to ((height of selectedShape) / 72) as text
    set rotationAngle to rotation of selectedShape
    return shapeName & "|" & shapeType & "|" & leftInches & "|" & topInches & "|" & widthInches & "|" & heightInches & "|" & rotationAngle
  end tell
end tell
"""

MAC_FIELDS = ("name", "type", "left", "top", "width", "height", "rotation")


class MacAppleScriptBridge(SubprocessBridge):
    """Capture through AppleScript. Geometry only; no fill, line or native file."""

    name = "AppleScript"

    def _run(self) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["osascript", "-e", MAC_CAPTURE_SCRIPT],
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    def _parse(self, completed: subprocess.CompletedProcess) -> CaptureResult:
        output = (completed.stdout or "").strip()
        stderr = (completed.stderr or "").strip()

        if completed.returncode != 0:
            if "not running" in stderr or "isn't running" in stderr:
                return CaptureResult.failure("PowerPoint is not running")
            return CaptureResult.failure(f"Failed to extract shape: {stderr or output}")

        if output.startswith(ERROR_PREFIX):
            return CaptureResult.failure(output[len(ERROR_PREFIX):].strip())

        parts = output.split("|")
        if len(parts) < len(MAC_FIELDS):
            return CaptureResult.failure("Invalid output from AppleScript")

        # Names may contain the delimiter; the six trailing fields never do.
        tail = parts[-(len(MAC_FIELDS) - 1):]
        name = "|".join(parts[: len(parts) - len(tail)])
        data = dict(zip(MAC_FIELDS, [name] + tail))
        return CaptureResult(success=True, shape=RawCapturedShape.from_bridge(data))


class UnsupportedPlatformBridge(CaptureBridge):
    """Bridge for hosts without presentation automation."""

    def __init__(self, platform: str) -> None:
        self.platform = platform

    def capture_selection(self) -> CaptureResult:
        return CaptureResult.failure(
            f"Unsupported operating system: {self.platform}. Only Windows and macOS are supported."
        )


def get_platform_bridge(
    settings: Settings,
    paths: LibraryPaths,
    platform: str | None = None,
) -> CaptureBridge:
    """Pick the bridge for the running operating system.

    Args:
        settings: Supplies the timeout and native-save options.
        paths: Library layout, for native file placement.
        platform: Override for ``sys.platform``.

    Returns:
        A CaptureBridge.
    """
    platform = platform or sys.platform
    if platform == "win32":
        return WindowsPowerShellBridge(
            paths,
            timeout=settings.bridge_timeout_seconds,
            skip_native_save=settings.skip_native_save,
        )
    if platform == "darwin":
        return MacAppleScriptBridge(timeout=settings.bridge_timeout_seconds)
    return UnsupportedPlatformBridge(platform)
