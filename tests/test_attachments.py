from __future__ import annotations

import tempfile
from pathlib import Path
from unittest.mock import patch

from cowork.attachments import (
    MAX_CONTENT_CHARS,
    create_attachment_summary,
    file_info,
    format_bytes,
    process_attachments,
)
from cowork.bridge.messages import FileAttachment


def _attach(path: Path, mime_type: str = "", size: int | None = None) -> FileAttachment:
    return FileAttachment(
        name=path.name,
        path=str(path),
        mime_type=mime_type,
        size=path.stat().st_size if size is None and path.exists() else (size or 0),
    )


def test_format_bytes() -> None:
    assert format_bytes(0) == "0 B"
    assert format_bytes(512) == "512 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(10 * 1024 * 1024) == "10 MB"


def test_file_info_prefers_extension() -> None:
    assert file_info("/a/report.PDF", "application/pdf", 2048) == "report.PDF (.pdf, 2 KB)"
    assert file_info("/a/Makefile", "text/plain", 10) == "Makefile (text/plain, 10 B)"


def test_no_attachments_is_a_no_op() -> None:
    result = process_attachments([])
    assert result.success
    assert result.context_text == ""


def test_text_file_is_inlined_and_descriptors_for_binaries() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        notes = Path(tmpdir) / "notes.md"
        notes.write_text("# Agenda\n- budget\n")
        image = Path(tmpdir) / "chart.png"
        image.write_bytes(b"\x89PNG\r\n")
        blob = Path(tmpdir) / "data.bin"
        blob.write_bytes(b"\x00\x01")

        result = process_attachments([
            _attach(notes, "text/markdown"),
            _attach(image, "image/png"),
            _attach(blob, "application/octet-stream"),
        ])

    assert result.success
    assert [a.is_text for a in result.attachments] == [True, False, False]
    assert result.attachments[1].is_image
    text = result.context_text
    assert text.startswith("\n\nAttached files:\n\n")
    assert "--- File: notes.md (.md, 18 B) ---\n# Agenda\n- budget\n\n--- End of notes.md ---" in text
    assert "[Image file: chart.png, 6 B]" in text
    assert "[Binary file: data.bin, 2 B]" in text


def test_dotfile_is_treated_as_text() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        env = Path(tmpdir) / ".env"
        env.write_text("KEY=value\n")
        result = process_attachments([_attach(env)])
    assert result.attachments[0].is_text
    assert "KEY=value" in result.context_text


def test_long_text_is_truncated() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        big = Path(tmpdir) / "big.txt"
        big.write_text("x" * (MAX_CONTENT_CHARS + 10))
        result = process_attachments([_attach(big, "text/plain")])
    content = result.attachments[0].content
    assert content.startswith("x" * MAX_CONTENT_CHARS)
    assert content.endswith(f"[Content truncated - file exceeds {MAX_CONTENT_CHARS} characters]")


def test_missing_file_is_reported_but_others_survive() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        ok = Path(tmpdir) / "ok.txt"
        ok.write_text("fine")
        gone = Path(tmpdir) / "gone.txt"

        result = process_attachments([
            _attach(ok, "text/plain"),
            FileAttachment(name="gone.txt", path=str(gone), mime_type="text/plain", size=4),
        ])

    assert not result.success
    assert result.errors == [f"gone.txt: File not found: {gone}"]
    assert len(result.attachments) == 2
    assert "[Error reading gone.txt (.txt, 4 B): File not found:" in result.context_text
    assert "fine" in result.context_text


def test_directory_and_oversized_file_errors() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        folder = Path(tmpdir) / "folder"
        folder.mkdir()
        small = Path(tmpdir) / "small.txt"
        small.write_text("abc")

        with patch("cowork.attachments.MAX_FILE_BYTES", 2):
            result = process_attachments([
                FileAttachment(name="folder", path=str(folder), size=0),
                _attach(small, "text/plain"),
            ])

    assert result.attachments[0].error == "Path is not a file"
    assert "exceeds maximum allowed" in result.attachments[1].error


def test_total_size_limit_rejects_everything() -> None:
    attachments = [
        FileAttachment(name="a.txt", path="/nowhere/a.txt", size=6),
        FileAttachment(name="b.txt", path="/nowhere/b.txt", size=6),
    ]
    result = process_attachments(attachments, max_total_bytes=10)
    assert not result.success
    assert result.attachments == []
    assert result.errors == ["Total attachment size (12 B) exceeds maximum (10 B)"]


def test_attachment_summary() -> None:
    summary = create_attachment_summary([
        FileAttachment(name="a.txt", path="/x/a.txt", mime_type="text/plain", size=3),
        FileAttachment(name="b.png", path="/x/b.png", mime_type="image/png", size=2048),
    ])
    assert summary == "Attached: a.txt (.txt, 3 B), b.png (.png, 2 KB)"
    assert create_attachment_summary([]) == ""
