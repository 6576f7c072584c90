import logging
import os
from logging.handlers import RotatingFileHandler

# Create logger
gate_logger = logging.getLogger("gate")
gate_logger.setLevel(logging.INFO)

# Prevent duplicate handlers
if not gate_logger.handlers:
    # Rotating file handler: max 5 MB per file, keep 3 backups
    file_handler = RotatingFileHandler(
        os.getenv("GATE_LOG_FILE", "gate.log"), maxBytes=5*1024*1024, backupCount=3
    )
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)
    gate_logger.addHandler(file_handler)


def session_tag(session_id: str) -> str:
    """Short, non-reusable prefix of a session id for log lines."""
    return (session_id or "")[:8]
