"""Content chunking for the vault index.

Splits a file's text into spans that are embedded one by one:

- code files are split at top-level function/class/assignment boundaries,
  or into fixed windows when fewer than two boundaries exist
- markdown/text files are split heading-to-heading, or into blank-line
  separated paragraphs when there are no headings
- anything else is split into fixed windows

Every chunk keeps its character offsets into the original content.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

from lumina.vault.schema import ChunkMetadata, ChunkType, VaultChunk


CODE_EXTENSIONS = frozenset({".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c"})
TEXT_EXTENSIONS = frozenset({".md", ".txt"})

WINDOW_SIZE = 1000
MIN_CHUNK_CHARS = 50
MIN_SECTION_CHARS = 100

_BOUNDARY_PATTERN = re.compile(
    r"^(?:export\s+)?(?:async\s+)?"
    r"(?:function|class|def\s"
    r"|(?:const|let|var)\s+\w+\s*=\s*(?:async\s+)?\()",
    re.MULTILINE,
)
_HEADING_PATTERN = re.compile(r"^#{1,6}[ \t]+.+$", re.MULTILINE)
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")

# (text, start, end, type, heading)
_Span = tuple[str, int, int, ChunkType, str | None]


def get_category(file_path: str | Path) -> str:
    """Return 'code', 'text' or 'generic' for a file path."""
    ext = Path(file_path).suffix.lower()
    if ext in CODE_EXTENSIONS:
        return "code"
    if ext in TEXT_EXTENSIONS:
        return "text"
    return "generic"


def make_chunk_id(file_path: str, chunk_index: int, start: int) -> str:
    """Generate a chunk ID unique per file, position in file and span start."""
    stem = Path(file_path).stem
    digest = hashlib.sha256(file_path.encode()).hexdigest()[:8]
    return f"{stem}_{chunk_index}_{start}_{digest}"


def chunk_content(
    file_path: str,
    content: str,
    metadata: ChunkMetadata | None = None,
) -> list[VaultChunk]:
    """Split file content into chunks.

    Args:
        file_path: Path of the source file (used for category, id, metadata)
        content: Full text of the file
        metadata: File-level metadata (mtime, size, checksum) to attach

    Returns:
        Ordered chunks with ``embedding_offset`` unset; the indexer assigns it.
    """
    base = metadata or ChunkMetadata()
    file_name = Path(file_path).name
    category = get_category(file_path)

    if category == "code":
        spans = _split_code(content)
    elif category == "text":
        spans = _split_text(content)
    else:
        spans = _split_windows(content, ChunkType.GENERIC)

    chunks: list[VaultChunk] = []
    for text, start, end, chunk_type, heading in spans:
        if len(text.strip()) < MIN_CHUNK_CHARS:
            continue
        index = len(chunks)
        chunks.append(VaultChunk(
            id=make_chunk_id(file_path, index, start),
            file_path=file_path,
            chunk_index=index,
            text=text,
            start=start,
            end=end,
            type=chunk_type,
            metadata=ChunkMetadata(
                mtime=base.mtime,
                size=base.size,
                checksum=base.checksum,
                file_name=file_name,
                heading=heading,
            ),
        ))
    return chunks


def _split_windows(content: str, chunk_type: ChunkType) -> list[_Span]:
    spans: list[_Span] = []
    for start in range(0, len(content), WINDOW_SIZE):
        end = min(start + WINDOW_SIZE, len(content))
        spans.append((content[start:end], start, end, chunk_type, None))
    return spans


def _split_between(content: str, starts: list[int]) -> list[tuple[int, int]]:
    bounds = starts[1:] + [len(content)]
    return list(zip(starts, bounds))


def _split_code(content: str) -> list[_Span]:
    starts = [m.start() for m in _BOUNDARY_PATTERN.finditer(content)]
    if len(starts) < 2:
        return _split_windows(content, ChunkType.CODE)

    return [
        (content[start:end].strip(), start, end, ChunkType.FUNCTION, None)
        for start, end in _split_between(content, starts)
    ]


def _split_text(content: str) -> list[_Span]:
    headings = list(_HEADING_PATTERN.finditer(content))
    if headings:
        spans: list[_Span] = []
        starts = [m.start() for m in headings]
        for match, (start, end) in zip(headings, _split_between(content, starts)):
            text = content[start:end].strip()
            # Sections need more body than the global floor
            if len(text) <= MIN_SECTION_CHARS:
                continue
            spans.append((text, start, end, ChunkType.SECTION, match.group(0)))
        return spans

    return _split_paragraphs(content)


def _split_paragraphs(content: str) -> list[_Span]:
    spans: list[_Span] = []
    pos = 0
    for para in _PARAGRAPH_SPLIT.split(content):
        if len(para.strip()) < MIN_CHUNK_CHARS:
            continue
        start = content.find(para, pos)
        if start < 0:
            continue
        end = start + len(para)
        spans.append((para.strip(), start, end, ChunkType.PARAGRAPH, None))
        pos = end
    return spans
