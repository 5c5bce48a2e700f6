# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/dirop/logging/log.py

from __future__ import annotations

import logging
from pathlib import Path
from datetime import datetime, timezone
import uuid

FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(message)s"


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "dirop",
    verbose: bool = False,
    to_file: bool = True,
) -> tuple[logging.Logger, str, Path | None]:
    """
    Initializes the operator logger:
      - full DEBUG trace in a per-run log file
      - console at INFO, or DEBUG when --verbose is passed
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    log_path = None
    if to_file:
        if base_dir is None:
            base_dir = Path.home() / ".dirop" / "logs"
        base_dir.mkdir(parents=True, exist_ok=True)

        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        log_path = base_dir / f"{name}-{ts}-{run_id}.log"

        fh = logging.FileHandler(log_path)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    # the kubernetes client is very chatty at DEBUG
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger.info("=== dirop run started ===")
    logger.info("run_id=%s", run_id)
    if log_path:
        logger.info("log_file=%s", log_path)

    return logger, run_id, log_path
