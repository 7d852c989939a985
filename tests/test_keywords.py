from job_harvest.keywords import build_keyword_set, is_boilerplate, is_candidate_job_post


def _long(text: str, size: int = 200) -> str:
    return (text + " ") * (size // (len(text) + 1) + 1)


def test_rejects_text_under_fifty_characters() -> None:
    assert not is_candidate_job_post("Hiring a remote Python engineer, apply now")
    assert not is_candidate_job_post("")
    assert not is_candidate_job_post(None)


def test_rejects_subscribe_boilerplate_even_with_keywords() -> None:
    text = "Subscribe to our channel for daily remote developer job offers and salary news!"
    assert len(text) >= 50
    assert not is_candidate_job_post(text)


def test_rejects_other_promotional_phrases() -> None:
    assert not is_candidate_job_post(_long("Join our community of remote engineers"))
    assert not is_candidate_job_post(_long("Follow us for more developer jobs"))
    assert not is_candidate_job_post("👆 " + _long("remote developer jobs posted above"))


def test_accepts_two_hundred_characters_mentioning_remote() -> None:
    text = _long("We are looking for a teammate to work remote with us.")[:200]
    assert len(text) == 200
    assert is_candidate_job_post(text)


def test_rejects_long_text_without_any_keyword() -> None:
    assert not is_candidate_job_post(_long("Photos from our team offsite at the lake this weekend"))


def test_keyword_match_is_case_insensitive() -> None:
    assert is_candidate_job_post(_long("Big news: ACME is HIRING backend people in Berlin"))


def test_keyword_csv_override_adds_new_terms() -> None:
    keywords = build_keyword_set("Rust, golang")
    assert "rust" in keywords
    assert "golang" in keywords
    assert "remote" in keywords
    assert is_candidate_job_post(_long("Looking for someone who loves Rust and systems"), keywords)


def test_is_boilerplate_checks_leading_arrow_emoji() -> None:
    assert is_boilerplate("⬆️ scroll up for the full list")
    assert not is_boilerplate("Remote role, details ⬆️")
