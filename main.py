#!/usr/bin/env python3
"""
vidscribe-worker v1.0.0 — Main entry point.
Long-running queue worker: polls the video processing queue and turns
videos into transcript documents.
"""

import sys
import signal
import logging
import threading
import traceback
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vidscribe.core.constants import APP_NAME, APP_VERSION
from vidscribe.core.config import WorkerConfig
from vidscribe.core.error_codes import ConfigurationError

logger = logging.getLogger(APP_NAME)


def setup_logging(config: WorkerConfig):
    """Stream to stderr, plus a UTF-8 log file when configured."""
    handlers = [logging.StreamHandler(sys.stderr)]
    log_file = config.get('log_file')
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    level = getattr(logging, str(config.get('log_level') or 'INFO').upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
    # Client libraries are chatty at INFO
    for noisy in ("botocore", "boto3", "urllib3", "httpx", "hpack"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def run_workers(context, worker_count: int) -> int:
    """Run dispatcher threads until a signal or a fatal configuration error."""
    from vidscribe.core.job_queue import JobDispatcher

    shutdown = threading.Event()
    dispatchers = [JobDispatcher(context, name=f"dispatcher-{i + 1}") for i in range(worker_count)]

    def _handle_signal(signum, frame):
        logger.info("Received %s, finishing current jobs…", signal.Signals(signum).name)
        for d in dispatchers:
            d.stop_after_current()
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    for d in dispatchers:
        d.start()

    while not shutdown.is_set():
        if not any(d.is_running() for d in dispatchers):
            break
        shutdown.wait(1.0)

    for d in dispatchers:
        d.join()

    fatal = next((d.fatal_error for d in dispatchers if d.fatal_error), None)
    if fatal is not None:
        logger.critical("Worker stopped: %s", fatal)
        return 1
    return 0


def main():
    config = WorkerConfig()
    setup_logging(config)

    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("Project root: %s", PROJECT_ROOT)
    logger.info("=" * 60)

    try:
        from vidscribe.core.context import WorkerContext
        from vidscribe.core.diagnostics import check_prerequisites, get_diagnostics

        missing = check_prerequisites(config)
        if missing:
            logger.error("Missing required tools: %s", ", ".join(missing))
            sys.exit(1)
        for key, value in get_diagnostics(config).items():
            logger.info("%s: %s", key, value)

        context = WorkerContext.from_config(config)
        sys.exit(run_workers(context, config.worker_count))
    except ConfigurationError as e:
        logger.critical("Configuration error: %s", e.message)
        sys.exit(2)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        logger.critical("Fatal error: %s\n%s", error_msg, traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
