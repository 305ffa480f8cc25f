import math
from typing import List, Sequence

from config.platform import SUPPORTED_FORMATS
from errors import ValidationFailed

GIB = 1024**3
MIB = 1024**2


def round_megabytes(size_bytes: int) -> int:
    """Whole megabytes, halves rounded up."""
    return int(math.floor(size_bytes / MIB + 0.5))


def size_label(limit_bytes: int) -> str:
    if limit_bytes >= GIB and limit_bytes % GIB == 0:
        return f"{limit_bytes // GIB}GB"
    return f"{round_megabytes(limit_bytes)}MB"


def file_extension(filename: str) -> str:
    return filename.lower().rsplit(".", 1)[-1]


def validate_payload(
    size_bytes: int,
    filename: str,
    max_size_bytes: int,
    max_filename_length: int = 128,
    supported_formats: Sequence[str] = SUPPORTED_FORMATS,
    check_size: bool = True,
) -> List[str]:
    """Return every rule the payload breaks; empty when it is valid."""
    errors: List[str] = []

    if check_size and size_bytes > max_size_bytes:
        errors.append(
            f"File size ({round_megabytes(size_bytes)}MB) exceeds maximum allowed size "
            f"of {size_label(max_size_bytes)}"
        )

    if len(filename) > max_filename_length:
        errors.append(
            f"Filename length ({len(filename)}) exceeds maximum allowed length "
            f"of {max_filename_length} characters"
        )

    extension = file_extension(filename)
    if extension not in supported_formats:
        errors.append(
            f'File format "{extension}" is not supported. '
            f"Supported formats: {', '.join(supported_formats)}"
        )

    return errors


def ensure_valid_payload(*args, message: str = "File validation failed", **kwargs) -> None:
    errors = validate_payload(*args, **kwargs)
    if errors:
        raise ValidationFailed(errors, message=message)
