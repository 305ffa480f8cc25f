"""
Multipart codec
Decodes raw multipart/form-data bodies without a web framework and encodes the
presigned-POST body sent to storage.
"""

import logging
import re
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from errors import DecodeFailed

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
HEADER_END = b"\r\n\r\n"

_BOUNDARY_RE = re.compile(r"boundary=([^;]+)", re.IGNORECASE)
_NAME_RE = re.compile(r'(?:^|[;\s])name="([^"]*)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'(?:^|[;\s])filename="([^"]*)"', re.IGNORECASE)


@dataclass
class UploadedFile:
    filename: str
    content: bytes


@dataclass
class MultipartForm:
    fields: Dict[str, str] = field(default_factory=dict)
    file: Optional[UploadedFile] = None


class _SegmentState(Enum):
    HEADERS = "headers"
    PAYLOAD = "payload"
    COMPLETE = "complete"


class _MalformedSegment(Exception):
    pass


def extract_boundary(content_type: Optional[str]) -> str:
    match = _BOUNDARY_RE.search(content_type or "")
    if not match:
        raise DecodeFailed("Invalid multipart data: no boundary found in content-type")
    boundary = match.group(1).strip().replace('"', "")
    if not boundary:
        raise DecodeFailed("Invalid multipart data: empty boundary in content-type")
    return boundary


def _iter_segments(body: bytes, delimiter: bytes) -> Iterator[bytes]:
    """Yield the bytes between consecutive delimiter lines.

    A delimiter only counts at the start of the body or directly after CRLF, so
    payload bytes that happen to contain the boundary text mid-line are kept.
    """
    starts: List[int] = []
    pos = 0
    while True:
        idx = body.find(delimiter, pos)
        if idx < 0:
            break
        if idx == 0 or body[idx - 2:idx] == CRLF:
            starts.append(idx)
        pos = idx + len(delimiter)

    for i, start in enumerate(starts):
        seg_start = start + len(delimiter)
        seg_end = starts[i + 1] if i + 1 < len(starts) else len(body)
        yield body[seg_start:seg_end]


def _parse_segment(segment: bytes) -> Optional[Tuple[str, Optional[str], bytes]]:
    """Walk one segment through headers -> payload.

    Returns (name, filename, payload), None for segments that carry no
    Content-Disposition (preamble, closing `--`), or raises _MalformedSegment.
    """
    state = _SegmentState.HEADERS
    disposition: Optional[str] = None
    payload = b""

    # Every segment begins with the CRLF that ends the delimiter line.
    cursor = 2 if segment.startswith(CRLF) else 0

    while state is not _SegmentState.COMPLETE:
        if state is _SegmentState.HEADERS:
            header_end = segment.find(HEADER_END)
            header_block = segment[cursor:header_end] if header_end >= 0 else segment[cursor:]
            for line in header_block.split(CRLF):
                text = line.decode("utf-8", errors="replace")
                if text.lower().startswith("content-disposition"):
                    disposition = text
                    break
            if disposition is None:
                return None
            if header_end < 0:
                raise _MalformedSegment("missing blank line after part headers")
            cursor = header_end + len(HEADER_END)
            state = _SegmentState.PAYLOAD
        elif state is _SegmentState.PAYLOAD:
            if not segment.endswith(CRLF) or len(segment) - len(CRLF) < cursor:
                raise _MalformedSegment("missing line terminator after part payload")
            payload = segment[cursor:len(segment) - len(CRLF)]
            state = _SegmentState.COMPLETE

    name_match = _NAME_RE.search(disposition)
    if not name_match or not name_match.group(1):
        raise _MalformedSegment("part has no field name")
    filename_match = _FILENAME_RE.search(disposition)
    filename = filename_match.group(1) if filename_match else None
    return name_match.group(1), filename, payload


def decode_multipart(raw_body: bytes, content_type: Optional[str], strict: bool = False) -> MultipartForm:
    """
    Parse a multipart/form-data body into text fields and one file.

    Args:
        raw_body: Request body exactly as received
        content_type: Request Content-Type header carrying `boundary=`
        strict: Raise on malformed parts instead of skipping them

    Returns:
        MultipartForm with decoded fields and the (last) file part, if any

    Raises:
        DecodeFailed: Boundary missing, or a malformed part while strict
    """
    boundary = extract_boundary(content_type)
    delimiter = b"--" + boundary.encode("latin-1", errors="replace")

    form = MultipartForm()
    for index, segment in enumerate(_iter_segments(raw_body, delimiter)):
        try:
            parsed = _parse_segment(segment)
        except _MalformedSegment as e:
            if strict:
                raise DecodeFailed(f"Malformed multipart part {index}: {e}")
            logger.debug(f"Skipping part {index}: {e}")
            continue

        if parsed is None:
            continue

        name, filename, payload = parsed
        if filename is not None:
            form.file = UploadedFile(filename=filename, content=payload)
            logger.debug(f"File part {name!r}: {filename} ({len(payload)} bytes)")
        else:
            form.fields[name] = payload.decode("utf-8", errors="replace")

    logger.info(
        f"Parsed multipart body: {len(form.fields)} fields, "
        f"file={'yes' if form.file else 'no'}"
    )
    return form


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\r", "").replace("\n", "")


def encode_multipart(
    fields: Dict[str, str],
    file_bytes: bytes,
    filename: str,
    boundary: Optional[str] = None,
) -> Tuple[bytes, str]:
    """
    Build a presigned-POST body: one part per field in order, then the file part.

    Storage backends require the file to be the last part.

    Returns:
        (body, content_type header value)
    """
    boundary = boundary or f"----formdata-{secrets.token_hex(12)}"
    dash_boundary = f"--{boundary}".encode("utf-8")

    chunks: List[bytes] = []
    for key, value in fields.items():
        chunks.append(dash_boundary + CRLF)
        chunks.append(f'Content-Disposition: form-data; name="{_quote(key)}"'.encode("utf-8") + HEADER_END)
        chunks.append(str(value).encode("utf-8") + CRLF)

    chunks.append(dash_boundary + CRLF)
    chunks.append(
        f'Content-Disposition: form-data; name="file"; filename="{_quote(filename)}"'.encode("utf-8") + CRLF
    )
    chunks.append(b"Content-Type: application/octet-stream" + HEADER_END)
    chunks.append(file_bytes)
    chunks.append(CRLF + dash_boundary + b"--" + CRLF)

    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"
