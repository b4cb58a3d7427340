# run_server.py
import os
import sys
import logging
import faulthandler
from pathlib import Path

# write crash logs next to the exe
BASE_DIR = Path(sys.executable).resolve().parent if getattr(sys, "frozen", False) else Path(__file__).resolve().parent
LOG_FILE = BASE_DIR / "backend_crash.log"

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5001"))


def main():
    # dump fatal crashes too
    faulthandler.enable(open(LOG_FILE, "a", encoding="utf-8"))

    crash_log = logging.getLogger("run_server")
    crash_log.addHandler(logging.FileHandler(LOG_FILE, encoding="utf-8"))

    try:
        import uvicorn

        # IMPORTANT: import app after logging is ready
        from main import app

        crash_log.info("--- START --- exe=%s cwd=%s base_dir=%s", sys.executable, os.getcwd(), BASE_DIR)
        uvicorn.run(app, host=HOST, port=PORT, reload=False, log_level="info")
    except Exception:
        crash_log.exception("Backend crashed")
        raise


if __name__ == "__main__":
    main()
