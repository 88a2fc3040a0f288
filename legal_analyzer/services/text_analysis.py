"""
Text Analyzer - tokenization, frequency counting, legal-term extraction and
structural metrics for Portuguese legal documents.

All functions are pure. Frequency maps are plain dicts, whose insertion
order decides ties when ranking: the first-seen word wins.
"""

import re

from legal_analyzer.schemas.models import LegalTermCount, TextStructure, WordCount

GENERAL_STOPWORDS = frozenset(
    [
        "a", "o", "e", "de", "da", "do", "em", "para", "com", "por", "que",
        "os", "as", "dos", "das", "no", "na", "nos", "nas", "um", "uma",
        "ao", "à", "pelo", "pela", "este", "esta", "esse", "essa", "aquele",
        "aquela", "seu", "sua", "nosso", "nossa", "ele", "ela", "eles", "elas",
    ]
)

LEGAL_STOPWORDS = frozenset(
    [
        "considerando", "outrossim", "art", "artigo", "parágrafo",
        "inciso", "alínea", "caput", "dispositivo", "normativo",
        "legal", "lei", "decreto", "portaria", "resolução",
        "instrução", "normativa", "regulamento", "código",
    ]
)

STOPWORDS = GENERAL_STOPWORDS | LEGAL_STOPWORDS

LEGAL_TERMS = frozenset(
    [
        "contrato", "cláusula", "rescisão", "indenização", "multa",
        "fiador", "locatário", "locador", "devedor", "credor",
        "obrigação", "direito", "dever", "responsabilidade", "prazo",
        "notificação", "intimação", "citação", "sentença", "acórdão",
        "recurso", "apelação", "agravo", "embargo", "mandado",
        "petição", "contestação", "réplica", "tréplica", "parecer",
        "laudo", "perícia", "prova", "testemunha", "depoimento",
        "jurisprudência", "súmula", "precedente", "coisa julgada",
        "trânsito em julgado", "prescrição", "decadência", "nulidade",
        "anulabilidade", "vício", "defeito", "dano", "prejuízo",
        "lucro cessante", "dano emergente", "mora", "inadimplemento",
        "cumprimento", "execução", "penhora", "arresto", "sequestro",
        "hipoteca", "penhor", "fiança", "caução", "garantia",
    ]
)

LEGAL_INDICATORS = (
    "contrato", "lei", "artigo", "cláusula", "parágrafo",
    "decreto", "petição", "sentença", "acórdão", "processo",
)

TOP_WORDS_DOCUMENT = 5
TOP_WORDS_CHUNK = 10
MIN_WORD_LENGTH = 3

_NON_LETTER_PATTERN = re.compile(r"[^a-z\sàáâãäéèêëíìîïóòôõöúùûüçñ]")
_PARAGRAPH_BREAK_PATTERN = re.compile(r"\n\n+")
_ARTICLE_PATTERN = re.compile(r"\bart\.?\s*\d+", re.IGNORECASE)
_SECTION_PATTERN = re.compile(r"\b[Ss]eção\s+[IVX\d]+")


def extract_words(text: str) -> list[str]:
    """Lowercase, strip non-letters, split and drop short words and stopwords."""
    cleaned = _NON_LETTER_PATTERN.sub(" ", text.lower())
    return [
        word
        for word in cleaned.split()
        if len(word) >= MIN_WORD_LENGTH and word not in STOPWORDS
    ]


def word_frequency(words: list[str]) -> dict[str, int]:
    frequency: dict[str, int] = {}
    for word in words:
        frequency[word] = frequency.get(word, 0) + 1
    return frequency


def rank_counts(frequency: dict[str, int], limit: int | None = None) -> list[tuple[str, int]]:
    """
    Sort a frequency map by descending count.

    sorted() is stable, so equal counts keep the map's insertion order.
    """
    ranked = sorted(frequency.items(), key=lambda item: item[1], reverse=True)
    return ranked if limit is None else ranked[:limit]


def top_words(frequency: dict[str, int], limit: int) -> list[WordCount]:
    return [WordCount(word=word, count=count) for word, count in rank_counts(frequency, limit)]


def extract_legal_terms(words: list[str]) -> list[LegalTermCount]:
    """Every legal vocabulary match, most frequent first. Not truncated."""
    frequency = word_frequency([word for word in words if word in LEGAL_TERMS])
    return [LegalTermCount(term=term, count=count) for term, count in rank_counts(frequency)]


def analyze_structure(text: str) -> TextStructure:
    """Count paragraphs, articles and sections over the original text."""
    paragraphs = [p for p in _PARAGRAPH_BREAK_PATTERN.split(text) if p.strip()]
    return TextStructure(
        paragraphs=len(paragraphs),
        articles=len(_ARTICLE_PATTERN.findall(text)),
        sections=len(_SECTION_PATTERN.findall(text)),
    )


def basic_analysis(text: str) -> dict:
    """Word statistics and structure for a whole document (no sentiment)."""
    words = extract_words(text)
    return {
        "wordCount": len(words),
        "characterCount": len(text),
        "topWords": top_words(word_frequency(words), TOP_WORDS_DOCUMENT),
        "legalTerms": extract_legal_terms(words),
        "structure": analyze_structure(text),
    }


def is_legal_text(text: str) -> bool:
    """True when at least two legal indicators occur in the text."""
    lowered = text.lower()
    matches = [indicator for indicator in LEGAL_INDICATORS if indicator in lowered]
    return len(matches) >= 2
