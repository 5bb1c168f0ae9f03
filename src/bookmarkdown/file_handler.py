"""File handler module: path validation and encoding-aware read/write.

Used by Markdown import and export.  The sync functions only touch the
file system; the async wrappers run validation plus I/O via ``run_sync()``.
"""

import logging
from pathlib import Path

from charset_normalizer import from_bytes

from bookmarkdown.core.async_utils import run_sync

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".markdown")

# =============================================================================
# Path Validation
# =============================================================================


def validate_file_path(path_str: str) -> Path:
    """Resolve an input path (relative to CWD) and check it is a file.

    Raises:
        ValueError: If the path doesn't exist or is not a file.
    """
    resolved = Path(path_str).expanduser().resolve()
    if not resolved.exists():
        raise ValueError(f"File not found: {path_str}")
    if not resolved.is_file():
        raise ValueError(f"Path is not a file: {path_str}")
    if resolved.suffix.lower() not in MARKDOWN_SUFFIXES:
        logger.warning("%s does not look like a Markdown file", resolved)
    return resolved


def validate_output_path(
    path_str: str, base_dir: str | None = None
) -> Path:
    """Validate an output file path (file need not exist, but parent must).

    Args:
        path_str: Path for the output file, relative paths resolve against CWD.
        base_dir: Optional base directory; output must be under this directory.

    Returns:
        Resolved Path object for the output file.

    Raises:
        ValueError: If the parent doesn't exist, the path is a directory,
            or it is outside base_dir.
    """
    resolved = Path(path_str).expanduser().resolve()
    if resolved.is_dir():
        raise ValueError(f"Output path is a directory: {path_str}")
    if not resolved.parent.exists():
        raise ValueError(
            f"Output parent directory not found: {resolved.parent}"
        )
    if base_dir is not None:
        base_resolved = Path(base_dir).resolve()
        if not resolved.is_relative_to(base_resolved):
            raise ValueError(
                f"Output path is outside base directory: {resolved} not under {base_resolved}"
            )
    return resolved


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Bookmark exports from older tools are not always UTF-8, so the raw
    bytes go through charset-normalizer.  Empty files and failed
    detection fall back to UTF-8.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    logger.debug("Read %s as %s", path, encoding)
    return (content, encoding)


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content to a file, creating parent directories as needed.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)


# =============================================================================
# Async Wrappers
# =============================================================================


async def read_file_async(path_str: str) -> tuple[str, str, Path]:
    """Async wrapper: validate path, read file with encoding detection.

    Returns:
        Tuple of (content_string, detected_encoding, resolved_path).

    Raises:
        ValueError: If path validation fails.
    """
    resolved = await run_sync(validate_file_path, path_str)
    content, encoding = await run_sync(read_file_with_encoding, resolved)
    return (content, encoding, resolved)


async def write_file_async(
    path_str: str, content: str, encoding: str = "utf-8"
) -> tuple[Path, int]:
    """Async wrapper: validate output path, write file.

    Returns:
        Tuple of (resolved_path, bytes_written).

    Raises:
        ValueError: If output path validation fails.
    """
    resolved = await run_sync(validate_output_path, path_str)
    count = await run_sync(write_file, resolved, content, encoding)
    return (resolved, count)
