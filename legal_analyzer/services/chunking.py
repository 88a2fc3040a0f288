"""
Chunk Planner - splits oversized documents into structure-aware chunks.

Articles ("Art. 12") are the preferred boundary, paragraphs the fallback.
Segments still larger than the target size are broken at sentence
boundaries, then at word boundaries, before being accumulated.
"""

import re

_ARTICLE_BOUNDARY = re.compile(r"(?=\n\s*[Aa]rt\.?\s*\d+)")
_PARAGRAPH_BOUNDARY = re.compile(r"\n\n+")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?;])\s+")


def needs_chunking(text: str, chunk_size: int) -> bool:
    return len(text) > chunk_size * 2


def create_chunks(text: str, chunk_size: int, min_chunk_size: int) -> list[str]:
    """
    Split text into chunks of roughly chunk_size characters.

    A chunk is flushed when appending the next segment would exceed
    chunk_size and the chunk already holds more than min_chunk_size
    characters; otherwise the segment is appended.
    """
    articles = [segment for segment in _ARTICLE_BOUNDARY.split(text) if segment.strip()]
    if len(articles) > 1:
        return _accumulate(articles, "\n", chunk_size, min_chunk_size)

    paragraphs = [p for p in _PARAGRAPH_BOUNDARY.split(text) if p.strip()]
    return _accumulate(paragraphs, "\n\n", chunk_size, min_chunk_size)


def _accumulate(
    segments: list[str], separator: str, chunk_size: int, min_chunk_size: int
) -> list[str]:
    chunks: list[str] = []
    current = ""

    for segment in segments:
        for piece in _split_oversized(segment, chunk_size):
            if len(current) + len(piece) > chunk_size and len(current) > min_chunk_size:
                chunks.append(current.strip())
                current = piece
            else:
                current += separator + piece

    if current.strip():
        chunks.append(current.strip())

    return chunks


def _split_oversized(segment: str, chunk_size: int) -> list[str]:
    if len(segment) <= chunk_size:
        return [segment]

    pieces: list[str] = []
    current = ""
    for sentence in _SENTENCE_BOUNDARY.split(segment):
        if not sentence.strip():
            continue
        if len(sentence) > chunk_size:
            if current:
                pieces.append(current)
                current = ""
            pieces.extend(_split_words(sentence, chunk_size))
        elif current and len(current) + 1 + len(sentence) > chunk_size:
            pieces.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence

    if current:
        pieces.append(current)
    return pieces


def _split_words(sentence: str, chunk_size: int) -> list[str]:
    pieces: list[str] = []
    current = ""
    for word in sentence.split():
        if current and len(current) + 1 + len(word) > chunk_size:
            pieces.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        pieces.append(current)
    return pieces
