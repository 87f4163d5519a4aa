# utils/crashlog.py
import datetime
import faulthandler
import os
import sys
import threading
import traceback

_fault_file = None
_log_root = None


def log_dir() -> str:
    d = _log_root or os.path.join(getattr(sys, "_MEIPASS", os.getcwd()), "logs")
    os.makedirs(d, exist_ok=True)
    return d


def _new_log_path(prefix: str = "crash") -> str:
    stamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    return os.path.join(log_dir(), f"{prefix}-{stamp}.txt")


def setup_crashlog(directory: str = None):
    """Native faults go to native-*.txt, uncaught exceptions to crash-*.txt."""
    global _fault_file, _log_root
    if directory:
        _log_root = os.path.abspath(directory)
    try:
        if _fault_file is None:
            _fault_file = open(_new_log_path("native"), "w", encoding="utf-8")
        faulthandler.enable(_fault_file, all_threads=True)
    except OSError:
        _fault_file = None

    def _hook(exc_type, exc, tb):
        try:
            with open(_new_log_path("crash"), "w", encoding="utf-8") as out:
                out.write("UNCAUGHT EXCEPTION\n")
                out.write("=" * 60 + "\n")
                traceback.print_exception(exc_type, exc, tb, file=out)
        finally:
            sys.__excepthook__(exc_type, exc, tb)
    sys.excepthook = _hook

    def _thread_hook(args):
        _hook(args.exc_type, args.exc_value, args.exc_traceback)
    threading.excepthook = _thread_hook


def log_exception(title: str, exc: BaseException) -> str:
    """Dump one handled exception with its traceback; returns the file written."""
    path = _new_log_path("error")
    with open(path, "w", encoding="utf-8") as out:
        out.write(f"[{title}] {type(exc).__name__}: {exc}\n")
        out.write("Traceback:\n")
        out.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    return path
