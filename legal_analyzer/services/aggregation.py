"""
Result Aggregator - merges per-chunk partial results into one document result.
"""

from legal_analyzer.schemas.models import (
    ChunkResult,
    LegalTermCount,
    SentimentResult,
    WordCount,
)
from legal_analyzer.services.text_analysis import (
    TOP_WORDS_DOCUMENT,
    analyze_structure,
    rank_counts,
)

# Tie-break order when two labels have the same number of chunks.
SENTIMENT_LABELS = ("positivo", "negativo", "neutro")
SENTIMENT_SCORES = {"positivo": 0.5, "negativo": -0.5, "neutro": 0.0}
CONSOLIDATED_NOTE = "Análise consolidada de múltiplos chunks"


def consolidate_sentiment(chunk_results: list[ChunkResult]) -> SentimentResult | None:
    """Majority label across the chunks that produced one, with a synthetic score."""
    labels = [chunk.sentiment for chunk in chunk_results if chunk.sentiment]
    if not labels:
        return None

    counts = {label: labels.count(label) for label in SENTIMENT_LABELS if label in labels}
    # Ties go to the earlier label in SENTIMENT_LABELS
    dominant = max(counts, key=lambda label: counts[label])

    return SentimentResult(
        overall=dominant,
        score=SENTIMENT_SCORES[dominant],
        analysis=CONSOLIDATED_NOTE,
    )


def consolidate_chunk_results(chunk_results: list[ChunkResult], original_text: str) -> dict:
    """
    Merge chunk results.

    Counts are summed, rankings recomputed, and structure is measured again
    on the original text so that boundaries are not double counted.
    """
    total_words = sum(chunk.wordCount for chunk in chunk_results)

    merged_words: dict[str, int] = {}
    merged_terms: dict[str, int] = {}
    for chunk in chunk_results:
        for entry in chunk.topWords:
            merged_words[entry.word] = merged_words.get(entry.word, 0) + entry.count
        for entry in chunk.legalTerms:
            merged_terms[entry.term] = merged_terms.get(entry.term, 0) + entry.count

    return {
        "wordCount": total_words,
        "characterCount": len(original_text),
        "topWords": [
            WordCount(word=word, count=count)
            for word, count in rank_counts(merged_words, TOP_WORDS_DOCUMENT)
        ],
        "legalTerms": [
            LegalTermCount(term=term, count=count) for term, count in rank_counts(merged_terms)
        ],
        "sentiment": consolidate_sentiment(chunk_results),
        "structure": analyze_structure(original_text),
    }
