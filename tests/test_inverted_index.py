from blog.search.inverted_index import InvertedIndex


def test_score_only_returns_matching_documents():
    index = InvertedIndex()
    index.add("a", "go rust")
    index.add("b", "pasta salt")

    scores = index.score(["go"])

    assert set(scores) == {"a"}
    assert scores["a"] > 0


def test_repeated_terms_raise_score():
    index = InvertedIndex()
    index.add("boosted", "go go go other")
    index.add("plain", "go other other other")

    scores = index.score(["go"])

    assert scores["boosted"] > scores["plain"]


def test_more_matching_terms_rank_higher():
    index = InvertedIndex()
    index.add("both", "go rust")
    index.add("one", "go java")
    index.add("none", "pasta")

    scores = index.score(["go", "rust"])

    assert scores["both"] > scores["one"]
    assert "none" not in scores


def test_duplicate_query_terms_count_once():
    index = InvertedIndex()
    index.add("a", "go rust")
    index.add("b", "java")

    assert index.score(["go", "go", "go"]) == index.score(["go"])


def test_remove_leaves_no_postings():
    index = InvertedIndex()
    index.add("a", "go rust")
    index.add("b", "go")

    assert index.remove("a") is True
    assert index.postings("rust") == {}
    assert index.postings("go") == {"b": 1}
    assert "rust" not in index.vocabulary()
    assert "a" not in index
    assert index.remove("a") is False


def test_add_replaces_previous_terms():
    index = InvertedIndex()
    index.add("a", "go rust")
    index.add("a", "pasta")

    assert index.score(["go"]) == {}
    assert set(index.score(["pasta"])) == {"a"}
    assert len(index) == 1


def test_empty_text_is_not_indexed():
    index = InvertedIndex()
    index.add("a", "")

    assert len(index) == 0
    assert index.score(["anything"]) == {}
