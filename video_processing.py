"""
Technical probing of media files for Media Indexer.
Runs ffprobe, tracks its subprocesses for shutdown, and decides which probed files are real videos.
"""
import json
import logging
import os
import shutil
import subprocess
import threading
import time
from pathlib import Path

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """ffprobe could not produce a stream inventory for a file"""


# Shutdown and process tracking
shutdown_flag = threading.Event()
active_subprocesses = []  # List of active subprocess.Popen objects
active_subprocesses_lock = threading.Lock()

def register_subprocess(proc: subprocess.Popen):
    """Register a subprocess so it can be killed on shutdown"""
    with active_subprocesses_lock:
        active_subprocesses.append(proc)

def unregister_subprocess(proc: subprocess.Popen):
    """Unregister a subprocess when it completes"""
    with active_subprocesses_lock:
        if proc in active_subprocesses:
            active_subprocesses.remove(proc)

def kill_all_active_subprocesses():
    """Kill all registered subprocesses"""
    with active_subprocesses_lock:
        procs = active_subprocesses[:]
    for proc in procs:
        try:
            if proc.poll() is None:
                proc.terminate()
                try:
                    proc.wait(timeout=2)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.wait()
            unregister_subprocess(proc)
        except OSError as e:
            logger.warning(f"Error killing subprocess: {e}")

def run_interruptible_subprocess(cmd, timeout=30, capture_output=True, cwd=None):
    """Run a subprocess that can be interrupted by shutdown flag"""
    if shutdown_flag.is_set():
        return None

    proc = None
    start_time = time.time()
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE if capture_output else None,
            stderr=subprocess.PIPE if capture_output else None,
            cwd=cwd,
            creationflags=subprocess.CREATE_NO_WINDOW if os.name == 'nt' else 0
        )
        register_subprocess(proc)

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
            elapsed = time.time() - start_time
            if elapsed > 5:
                cmd_name = Path(cmd[0]).name if cmd else "unknown"
                logger.warning(f"Subprocess {cmd_name} took {elapsed:.2f}s")
            return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)
        except subprocess.TimeoutExpired:
            elapsed = time.time() - start_time
            cmd_name = Path(cmd[0]).name if cmd else "unknown"
            logger.error(f"Subprocess {cmd_name} timed out after {elapsed:.1f}s (timeout={timeout}s)")
            proc.kill()
            proc.wait()
            raise
    except KeyboardInterrupt:
        if proc:
            proc.kill()
            proc.wait()
        raise
    finally:
        if proc:
            unregister_subprocess(proc)

def _get_ffprobe_path_from_config() -> str:
    """
    Get ffprobe path from config.
    If the stored path is missing or gone, fall back to PATH and remember what was found.
    """
    from config import load_config, save_config
    config = load_config()
    ffprobe_path = config.get('ffprobe_path')

    if ffprobe_path and os.path.exists(str(ffprobe_path)):
        return str(ffprobe_path)
    if ffprobe_path:
        logger.warning(f"Stored ffprobe_path no longer exists: {ffprobe_path}")

    found = shutil.which("ffprobe")
    if not found:
        logger.error("ffprobe not found in config or PATH")
        return None

    config['ffprobe_path'] = found
    save_config(config)
    logger.info(f"ffprobe_path saved to config: {found}")
    return found

def _normalize_stream(stream: dict) -> dict:
    # ffprobe reports durations as strings ("1500.021000") or "N/A"
    stream = dict(stream)
    duration = stream.pop("duration", None)
    if duration is not None:
        try:
            stream["duration"] = float(duration)
        except (TypeError, ValueError):
            pass
    return stream

def probe(file_path) -> dict:
    """
    Return the stream inventory of a media file.

    Result shape: {"streams": [{"codec_type": ..., "duration": float, ...}], "format": {...}}.
    Streams without a usable duration carry no "duration" key.
    Raises ProbeError when ffprobe is unavailable, fails, or times out.
    """
    from config import get_probe_timeout_seconds

    ffprobe = _get_ffprobe_path_from_config()
    if not ffprobe:
        raise ProbeError("ffprobe is not configured")

    cmd = [
        ffprobe,
        "-v", "error",
        "-show_streams",
        "-show_format",
        "-of", "json",
        str(file_path)
    ]
    try:
        result = run_interruptible_subprocess(cmd, timeout=get_probe_timeout_seconds())
    except subprocess.TimeoutExpired as e:
        raise ProbeError(f"ffprobe timed out for {file_path}") from e
    except OSError as e:
        raise ProbeError(f"could not run ffprobe for {file_path}: {e}") from e

    if result is None:
        raise ProbeError("shutdown in progress")
    if result.returncode != 0:
        err = (result.stderr or b"").decode("utf-8", errors="ignore").strip()
        raise ProbeError(f"ffprobe failed for {file_path}: rc={result.returncode}, err={err}")

    try:
        data = json.loads((result.stdout or b"{}").decode("utf-8", errors="replace") or "{}")
    except json.JSONDecodeError as e:
        raise ProbeError(f"ffprobe returned invalid JSON for {file_path}: {e}") from e

    info = {
        "streams": [_normalize_stream(s) for s in data.get("streams", [])],
        "format": data.get("format", {}),
    }
    logger.debug(f"Probed {file_path}: {len(info['streams'])} stream(s)")
    return info

# --- Video acceptance ---

def has_video_stream(info: dict) -> bool:
    return any(
        str(stream.get("codec_type") or "").lower() == "video"
        for stream in info.get("streams", [])
    )

def extract_duration(info: dict) -> float:
    """Longest stream duration in seconds; streams without one are ignored, 0 if none have one"""
    durations = [
        stream["duration"] for stream in info.get("streams", [])
        if isinstance(stream.get("duration"), (int, float))
    ]
    return max(durations, default=0)

def is_video(info: dict) -> bool:
    """A probed file is a video when it has a video stream and lasts at least one second"""
    return (
        len(info.get("streams", [])) > 0
        and has_video_stream(info)
        and extract_duration(info) >= 1
    )
