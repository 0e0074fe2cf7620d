"""
Paragraph- and sentence-aware chunking with character overlap.
"""

import re

_SENTENCE_END_RE = re.compile(r"(?<=[.!?。])\s+")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")


def _normalize_whitespace(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _split_long(paragraph: str, chunk_size: int) -> list[str]:
    """Split a paragraph longer than chunk_size at sentence boundaries."""
    out: list[str] = []
    current = ""
    for sentence in _SENTENCE_END_RE.split(paragraph):
        # Sentence alone exceeds the budget: hard split
        while len(sentence) > chunk_size:
            if current:
                out.append(current)
                current = ""
            out.append(sentence[:chunk_size])
            sentence = sentence[chunk_size:]
        if not sentence:
            continue
        if current and len(current) + 1 + len(sentence) > chunk_size:
            out.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence
    if current:
        out.append(current)
    return out


def _overlap_tail(chunk: str, overlap: int) -> str:
    if overlap <= 0:
        return ""
    tail = chunk[-overlap:]
    # Start the tail on a word boundary
    if len(chunk) > overlap and " " in tail:
        tail = tail[tail.index(" ") + 1:]
    return tail.strip()


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """
    Split text into chunks of at most chunk_size characters.

    Paragraphs are packed together until the budget is reached; each new
    chunk starts with up to `overlap` trailing characters of the previous one,
    fewer when the next paragraph leaves no room. No chunk exceeds chunk_size.
    """
    text = _normalize_whitespace(text or "")
    if not text:
        return []
    if overlap >= chunk_size:
        overlap = chunk_size // 5

    pieces: list[str] = []
    for paragraph in _PARAGRAPH_RE.split(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) <= chunk_size:
            pieces.append(paragraph)
        else:
            pieces.extend(_split_long(paragraph, chunk_size))

    chunks: list[str] = []
    current = ""
    for piece in pieces:
        if current and len(current) + 2 + len(piece) > chunk_size:
            chunks.append(current)
            # Tail is capped so tail + separator + piece stays within chunk_size
            tail = _overlap_tail(current, min(overlap, chunk_size - len(piece) - 2))
            current = f"{tail}\n\n{piece}" if tail else piece
        else:
            current = f"{current}\n\n{piece}" if current else piece
    if current:
        chunks.append(current)
    return chunks
