"""Validation of statement uploads, applied before anything is persisted."""
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile
from pydantic import ValidationError

from app.core.errors import ValidationFailed
from app.schemas.monthly_package import StatementMetadata

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB
CHUNK_SIZE = 1024 * 1024  # 1 MiB streaming chunks

ALLOWED_CONTENT_TYPES = frozenset(
    {"application/pdf", "text/csv", "image/png", "image/jpeg"}
)

# Used only when the client does not declare a usable content type
_EXTENSIONS: dict[str, str] = {
    "pdf":  "application/pdf",
    "csv":  "text/csv",
    "png":  "image/png",
    "jpg":  "image/jpeg",
    "jpeg": "image/jpeg",
}


@dataclass
class StatementUpload:
    file_name: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def resolve_content_type(file_name: str, declared: str | None) -> str:
    """Return the accepted content type, or raise ValidationFailed."""
    declared = (declared or "").split(";")[0].strip().lower()
    if not declared or declared == "application/octet-stream":
        ext = Path(file_name).suffix.lstrip(".").lower()
        declared = _EXTENSIONS.get(ext, declared)
    if declared not in ALLOWED_CONTENT_TYPES:
        raise ValidationFailed(
            {"file": ["File type not allowed. Use PDF, CSV, PNG, or JPG."]}
        )
    return declared


def parse_metadata(**fields) -> StatementMetadata:
    try:
        return StatementMetadata(**fields)
    except ValidationError as exc:
        errors: dict[str, list[str]] = {}
        for err in exc.errors():
            name = str(err["loc"][0]) if err["loc"] else "__root__"
            errors.setdefault(name, []).append(err["msg"])
        raise ValidationFailed(errors) from exc


async def read_upload(file: UploadFile) -> StatementUpload:
    # Keep only the final path component; names end up in blob paths and zip entries
    file_name = Path(file.filename or "").name or "upload"
    content_type = resolve_content_type(file_name, file.content_type)

    # Stream the upload in chunks to avoid loading an oversized file into RAM
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > MAX_FILE_SIZE:
            raise ValidationFailed({"file": ["File exceeds 10MB limit"]})
        chunks.append(chunk)
    return StatementUpload(file_name=file_name, content_type=content_type, content=b"".join(chunks))
