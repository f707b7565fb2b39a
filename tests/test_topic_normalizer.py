import unicodedata

import pytest

from chatgraph.services.topic_normalizer import NoTopicsFound, TopicNormalizer, Topics


@pytest.mark.parametrize('raw', ['', '   ', 'không có tag', 'Không Có Tag', 'no tag', 'NO TAGS', '"không có tag"', 'None.'])
def test_empty_and_sentinels_yield_no_topics(normalizer, raw):
    assert isinstance(normalizer.classify(raw), NoTopicsFound)
    assert normalizer.normalize(raw) == []


def test_none_input_is_tolerated(normalizer):
    assert normalizer.normalize(None) == []


def test_case_insensitive_match_uses_canonical_spelling(normalizer):
    assert normalizer.normalize('áo, Giày, zzz') == ['Áo', 'Giày']


def test_result_is_deduplicated_in_first_seen_order(normalizer):
    result = normalizer.classify('giày, ÁO, Giày, áo')
    assert result == Topics(names=('Giày', 'Áo'))


def test_unknown_candidates_only_gives_empty_topics(normalizer):
    result = normalizer.classify('shoes, hats')
    assert isinstance(result, Topics)
    assert result.names == ()


def test_surrounding_quotes_and_whitespace_are_trimmed(normalizer):
    assert normalizer.normalize('  "Áo, Túi xách"  ') == ['Áo', 'Túi xách']
    assert normalizer.normalize("'quần' , 'khuyến mãi'") == ['Quần', 'Khuyến mãi']


def test_full_width_commas_split_candidates(normalizer):
    assert normalizer.normalize('Áo，Quần') == ['Áo', 'Quần']


def test_decomposed_unicode_matches(normalizer):
    decomposed = unicodedata.normalize('NFD', 'giày')
    assert normalizer.normalize(decomposed) == ['Giày']


def test_hallucinated_sentence_is_dropped(normalizer):
    assert normalizer.normalize('The tags are: Áo and Giày') == []


def test_empty_vocabulary_is_rejected():
    with pytest.raises(ValueError):
        TopicNormalizer(['', '  '])


def test_vocabulary_is_deduplicated_case_insensitively():
    normalizer = TopicNormalizer(['Áo', 'áo', 'Giày'])
    assert normalizer.vocabulary == ['Áo', 'Giày']
