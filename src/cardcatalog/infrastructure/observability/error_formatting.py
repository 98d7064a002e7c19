"""Human-readable messages for filesystem errors.

Scanning and pruning touch a lot of files on shares that come and go, so
the raw "[Errno 107]" text is not much help in the logs.
"""

import errno
from pathlib import Path
from typing import Any

# Hey future me - maps errno codes to (description, hint). The hints are about the
# situations we actually hit when walking a music library: NAS shares that dropped,
# permission mismatches, symlink loops. Add more when people report confusing errors.
ERRNO_MESSAGES = {
    errno.EACCES: (
        "Permission denied",
        "The catalog user can't read this path. Run: ls -la <path> to see permissions.",
    ),
    errno.EPERM: (
        "Operation not permitted",
        "The catalog user can't access this path. Check ownership and mount options.",
    ),
    errno.ENOENT: (
        "File or directory not found",
        "The path vanished during the scan, or the share is not mounted.",
    ),
    errno.ENOTDIR: (
        "Not a directory",
        "A configured root points at a file. Check scan.paths.",
    ),
    errno.ELOOP: (
        "Too many levels of symbolic links",
        "A symlink points back into its own tree. It is skipped.",
    ),
    errno.EIO: (
        "Input/output error",
        "The disk or network share returned an I/O error. Check dmesg and the mount.",
    ),
    errno.ESTALE: (
        "Stale file handle",
        "The NFS share was remounted or the export changed. Remount and rescan.",
    ),
    errno.ENOTCONN: (
        "Transport endpoint is not connected",
        "The network/FUSE mount is gone. Remount it before scanning or pruning.",
    ),
    errno.EMFILE: (
        "Too many open files",
        "Lower scan.cpu_workers or raise ulimit -n.",
    ),
    errno.EBUSY: (
        "Device or resource busy",
        "File is locked by another process.",
    ),
}


def format_oserror_message(
    e: OSError,
    operation: str,
    path: Path | str | None = None,
    extra_context: dict[str, Any] | None = None,
) -> str:
    """Format OSError with human-readable explanation and hint.

    Example:
        Failed to read directory '/music/A': Permission denied (Errno 13 / EACCES)
        HINT: The catalog user can't read this path. Run: ls -la <path> to see permissions.

    Args:
        e: The OSError exception
        operation: What was being attempted (e.g., "read directory", "open file")
        path: The file/directory path involved
        extra_context: Additional key/values appended to the message

    Returns:
        Formatted error message with errno, description and hint
    """
    error_code = e.errno
    error_name = errno.errorcode.get(error_code, f"UNKNOWN_{error_code}") if error_code else "UNKNOWN"

    if error_code in ERRNO_MESSAGES:
        description, hint = ERRNO_MESSAGES[error_code]
    else:
        description = e.strerror or str(e)
        hint = "Check system logs and file permissions."

    message = f"Failed to {operation}"
    if path:
        message += f" '{path}'"
    message += f": {description} (Errno {error_code} / {error_name})"

    if extra_context:
        context_str = ", ".join(f"{k}={v}" for k, v in extra_context.items())
        message += f" [{context_str}]"

    return f"{message}\nHINT: {hint}"
