"""Temporary on-disk copies of request bodies."""
import logging
import os
import tempfile

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def spool(file_storage, directory: str, suffix: str = "") -> str:
    """Save an uploaded FileStorage to a fresh temp file and return its path."""
    ensure_dir(directory)
    fd, path = tempfile.mkstemp(dir=directory, suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            file_storage.save(f)
    except Exception:
        discard(path)
        raise
    return path


def looks_like_pdf(path: str) -> bool:
    with open(path, "rb") as f:
        return f.read(len(PDF_MAGIC)) == PDF_MAGIC


def discard(path) -> None:
    """Remove a spooled file. Never raises; failures are only logged."""
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to cleanup temp file %s: %s", os.path.basename(path), e)
