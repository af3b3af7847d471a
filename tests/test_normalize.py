from normalize.markets import categories_for_hint, find_category
from normalize.names import TeamNameNormalizer
from normalize.text import canonicalize, extract, match_key, normalize


def test_normalize_strips_punctuation_and_case():
    assert normalize("  Josh  ALLEN's (BUF)!! ") == "josh allens buf"
    assert normalize(None) == ""
    assert normalize("!!!") == ""


def test_canonicalize_expands_betting_and_team_aliases():
    assert canonicalize("KC ML") == "chiefs moneyline"
    assert canonicalize("Mahomes pass yds") == "mahomes passing yards"
    assert canonicalize("Kansas City Chiefs") == "chiefs"


def test_aliases_only_replace_whole_words():
    # "rec" must not eat the start of "receptions".
    assert canonicalize("Kelce receptions") == "kelce receptions"
    assert canonicalize("Kelce rec") == "kelce receptions"


def test_extract_splits_subject_category_and_threshold():
    extraction = extract("Josh Allen (Bills) - Passing Yards 250.5")

    assert extraction.subject == "josh allen bills"
    assert extraction.category == "passing yards"
    assert extraction.team == "bills"
    assert extraction.threshold == 250.5
    assert extraction.side is None
    assert extraction.key == "josh allen bills passing yards 250.5"


def test_extract_reads_side_words_and_shorthand():
    over = extract("Mahomes over 275.5 passing yards")
    assert over.side == "over"
    assert over.threshold == 275.5
    assert over.subject == "mahomes"

    under = extract("Kelce u5.5 receptions")
    assert under.side == "under"
    assert under.threshold == 5.5
    assert under.category == "receptions"


def test_extract_without_category_keeps_a_hint():
    extraction = extract("Derrick Henry rushing")

    assert extraction.category is None
    assert extraction.subject == "derrick henry"
    assert extraction.hint == "rushing"


def test_extract_is_total_on_garbage():
    extraction = extract(None)
    assert extraction.subject is None
    assert extraction.category is None
    assert extraction.key == ""


def test_match_key_ignores_side_words():
    assert match_key("Josh Allen over passing yards 250.5") == match_key("josh allen passing yards 250.5")


def test_find_category_prefers_longest_phrase():
    assert find_category("kelce receiving touchdowns") == ("receiving touchdowns", 6)
    assert find_category("nothing here") is None


def test_categories_for_hint():
    assert categories_for_hint("rushing") == ["rushing touchdowns", "rushing attempts", "rushing yards"]
    assert categories_for_hint(None) == []


def test_team_normalizer_overrides():
    teams = TeamNameNormalizer({"KC Wolves": "wolves"})

    assert teams.canonicalize("KC Wolves") == "wolves"
    assert teams.canonicalize("Philadelphia Eagles") == "eagles"
    assert teams.canonicalize("Some Club") == "club"

    teams.update({"Big Red": "chiefs"})
    assert teams.canonicalize("big red") == "chiefs"
