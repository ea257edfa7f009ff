# ytm_rpc/debug.py
import os
import time
from pathlib import Path


def _debug_enabled() -> bool:
    return os.getenv("YTM_RPC_DEBUG", "").strip() in {"1", "true", "yes", "on"}


def _log_path() -> Path:
    return Path(__file__).resolve().parents[1] / "ytm_rpc_debug.log"


def log(tag: str, message: str) -> None:
    print(f"[{tag}] {message}", flush=True)
    if _debug_enabled():
        _append(f"[{tag}] {message}")


def debug_log(message: str) -> None:
    if not _debug_enabled():
        return

    _append(message)
    try:
        print(f"[DEBUG] {message}", flush=True)
    except Exception:
        pass


def _append(message: str) -> None:
    try:
        ts = time.strftime("%Y-%m-%d %H:%M:%S")
    except Exception:
        ts = "unknown-time"

    line = f"[{ts}] {message}\n"
    try:
        with _log_path().open("a", encoding="utf-8") as f:
            f.write(line)
    except OSError:
        pass
