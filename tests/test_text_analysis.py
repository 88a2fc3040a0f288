from legal_analyzer.services.text_analysis import (
    analyze_structure,
    basic_analysis,
    extract_legal_terms,
    extract_words,
    is_legal_text,
    rank_counts,
    top_words,
    word_frequency,
)

CONTRACT = (
    "O contrato de locação estabelece que o locatário deve pagar multa. "
    "O fiador responde pelo contrato."
)


def test_extract_words_drops_stopwords_and_short_words():
    words = extract_words("O Art. 5º da Lei diz que o réu tem direito.")

    assert "art" not in words
    assert "lei" not in words
    assert "que" not in words
    assert "tem" in words
    assert "direito" in words
    assert all(len(word) >= 3 for word in words)


def test_extract_words_strips_punctuation_and_digits():
    assert extract_words("Multa: R$ 1.500,00 (mil e quinhentos)!") == [
        "multa",
        "mil",
        "quinhentos",
    ]


def test_extract_words_keeps_accented_letters():
    assert extract_words("Rescisão da OBRIGAÇÃO") == ["rescisão", "obrigação"]


def test_contract_statistics():
    result = basic_analysis(CONTRACT)

    assert result["wordCount"] == 10
    assert result["characterCount"] == len(CONTRACT)
    assert result["topWords"][0].word == "contrato"
    assert result["topWords"][0].count == 2
    assert len(result["topWords"]) == 5

    terms = {entry.term: entry.count for entry in result["legalTerms"]}
    assert terms == {"contrato": 2, "locatário": 1, "multa": 1, "fiador": 1}


def test_ties_keep_first_seen_order():
    frequency = word_frequency(extract_words("gama alfa beta alfa gama beta delta"))

    ranked = [word for word, _ in rank_counts(frequency)]
    assert ranked == ["gama", "alfa", "beta", "delta"]


def test_top_words_limit():
    frequency = word_frequency(["um1", "dois", "tres", "quatro"])

    assert [entry.word for entry in top_words(frequency, 2)] == ["um1", "dois"]


def test_legal_terms_are_not_truncated():
    words = ["contrato", "multa", "fiador", "locador", "credor", "devedor", "prazo"]

    assert len(extract_legal_terms(words)) == 7


def test_legal_terms_most_frequent_first():
    terms = extract_legal_terms(["multa", "prazo", "prazo", "contrato", "prazo", "multa"])

    assert [(t.term, t.count) for t in terms] == [("prazo", 3), ("multa", 2), ("contrato", 1)]


def test_structure_counts():
    text = "Art. 1º Primeiro.\n\nart 2 Segundo.\n\n\nSeção II Disposições finais\n\n   \n"

    structure = analyze_structure(text)

    assert structure.paragraphs == 3
    assert structure.articles == 2
    assert structure.sections == 1


def test_article_pattern_requires_a_number():
    assert analyze_structure("O artigo seguinte e a arte contemporânea").articles == 0


def test_empty_structure():
    structure = analyze_structure("texto simples")

    assert (structure.paragraphs, structure.articles, structure.sections) == (1, 0, 0)


def test_is_legal_text():
    assert is_legal_text("Este contrato segue a lei vigente")
    assert is_legal_text("PETIÇÃO inicial do PROCESSO")
    assert not is_legal_text("Apenas um contrato")
    assert not is_legal_text("Bom dia a todos")
