"""Turn user-attached files into context text appended to the prompt.

Text files are inlined (truncated); images, PDFs, Office documents and
other binaries become one-line descriptors.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path

from cowork.bridge.messages import FileAttachment

logger = logging.getLogger(__name__)

MAX_TOTAL_BYTES = 50 * 1024 * 1024
MAX_FILE_BYTES = 10 * 1024 * 1024
MAX_CONTENT_CHARS = 100_000

TEXT_MIME_TYPES = frozenset({
    "text/plain",
    "text/markdown",
    "text/csv",
    "text/html",
    "text/css",
    "text/javascript",
    "text/xml",
    "application/json",
    "application/xml",
    "application/javascript",
    "application/typescript",
})

IMAGE_MIME_TYPES = frozenset({
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
    "image/svg+xml",
})

TEXT_EXTENSIONS = frozenset({
    ".txt", ".md", ".csv", ".json", ".xml", ".html", ".css", ".js", ".ts",
    ".tsx", ".jsx", ".py", ".rb", ".go", ".rs", ".java", ".c", ".cpp", ".h",
    ".hpp", ".sh", ".bash", ".zsh", ".ps1", ".bat", ".cmd", ".yaml", ".yml",
    ".toml", ".ini", ".env", ".conf", ".config", ".gitignore", ".dockerignore",
    ".editorconfig", ".eslintrc", ".prettierrc", ".babelrc",
})


@dataclass
class ProcessedAttachment:
    name: str
    path: str
    mime_type: str
    size: int
    content: str | None = None
    error: str | None = None
    is_text: bool = False
    is_image: bool = False


@dataclass
class AttachmentResult:
    success: bool = True
    attachments: list[ProcessedAttachment] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    context_text: str = ""


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    exponent = min(int(math.log(size, 1024)), len(units) - 1)
    return f"{round(size / 1024 ** exponent, 1):g} {units[exponent]}"


def file_info(path: str, mime_type: str, size: int) -> str:
    p = Path(path)
    return f"{p.name} ({p.suffix.lower() or mime_type}, {format_bytes(size)})"


def _is_text(mime_type: str, path: Path) -> bool:
    if mime_type in TEXT_MIME_TYPES:
        return True
    # Dotfiles like ".env" have no suffix; match on the whole name.
    ext = path.suffix.lower() or path.name.lower()
    return ext in TEXT_EXTENSIONS


def _read_text(path: Path) -> str:
    content = path.read_text(encoding="utf-8", errors="replace")
    if len(content) > MAX_CONTENT_CHARS:
        return (
            f"{content[:MAX_CONTENT_CHARS]}\n\n"
            f"[Content truncated - file exceeds {MAX_CONTENT_CHARS} characters]"
        )
    return content


def _process_one(attachment: FileAttachment) -> ProcessedAttachment:
    result = ProcessedAttachment(
        name=attachment.name,
        path=attachment.path,
        mime_type=attachment.mime_type,
        size=attachment.size,
    )
    if not attachment.path:
        result.error = "File path is missing"
        return result

    path = Path(attachment.path)
    try:
        stat = path.stat()
    except OSError:
        result.error = f"File not found: {attachment.path}"
        return result
    if not path.is_file():
        result.error = "Path is not a file"
        return result
    if stat.st_size > MAX_FILE_BYTES:
        result.error = (
            f"File size ({format_bytes(stat.st_size)}) exceeds maximum "
            f"allowed ({format_bytes(MAX_FILE_BYTES)})"
        )
        return result

    mime = attachment.mime_type
    size_str = format_bytes(stat.st_size)
    try:
        if _is_text(mime, path):
            result.content = _read_text(path)
            result.is_text = True
        elif mime in IMAGE_MIME_TYPES:
            result.content = f"[Image file: {path.name}, {size_str}]"
            result.is_image = True
        elif mime == "application/pdf":
            result.content = (
                f"[PDF file: {path.name}, {size_str} - PDF text extraction not implemented]"
            )
        elif "officedocument" in mime or "msword" in mime:
            result.content = (
                f"[Office document: {path.name}, {size_str} - document extraction not implemented]"
            )
        else:
            result.content = f"[Binary file: {path.name}, {size_str}]"
    except OSError as exc:
        result.error = str(exc)
    return result


def _build_context(processed: list[ProcessedAttachment]) -> str:
    sections: list[str] = []
    for item in processed:
        info = file_info(item.path, item.mime_type, item.size)
        if item.error:
            sections.append(f"[Error reading {info}: {item.error}]")
        elif item.is_text and item.content:
            sections.append(
                f"--- File: {info} ---\n{item.content}\n--- End of {item.name} ---"
            )
        elif item.content:
            sections.append(item.content)
    if not sections:
        return ""
    return "\n\nAttached files:\n\n" + "\n\n".join(sections)


def process_attachments(
    attachments: list[FileAttachment],
    max_total_bytes: int = MAX_TOTAL_BYTES,
) -> AttachmentResult:
    """Validate and read *attachments*, building the prompt context text."""
    if not attachments:
        return AttachmentResult()

    total = sum(a.size for a in attachments)
    if total > max_total_bytes:
        logger.warning(
            "Attachments rejected: %s exceeds %s",
            format_bytes(total), format_bytes(max_total_bytes),
        )
        return AttachmentResult(
            success=False,
            errors=[
                f"Total attachment size ({format_bytes(total)}) exceeds "
                f"maximum ({format_bytes(max_total_bytes)})"
            ],
        )

    processed: list[ProcessedAttachment] = []
    errors: list[str] = []
    for attachment in attachments:
        item = _process_one(attachment)
        processed.append(item)
        if item.error:
            errors.append(f"{attachment.name}: {item.error}")

    if errors:
        logger.warning("Attachment errors: %s", "; ".join(errors))
    return AttachmentResult(
        success=not errors,
        attachments=processed,
        errors=errors,
        context_text=_build_context(processed),
    )


def create_attachment_summary(attachments: list[FileAttachment]) -> str:
    if not attachments:
        return ""
    return "Attached: " + ", ".join(
        file_info(a.path, a.mime_type, a.size) for a in attachments
    )
