from chat_orchestrator.ingest.cleaning import (
    TRUNCATION_MARKER,
    clean_text,
    collapse_whitespace,
    remove_page_furniture,
    strip_control_characters,
    truncate,
)


def test_page_numbers_and_running_headers_are_removed() -> None:
    pages = [
        f"ACME Confidential\nSection {index} body text.\nPage {index} of 3" for index in range(1, 4)
    ]
    cleaned = remove_page_furniture("\n".join(pages))

    assert "ACME Confidential" not in cleaned
    assert "Page 1 of 3" not in cleaned
    assert "Section 2 body text." in cleaned


def test_whitespace_and_control_characters() -> None:
    raw = "Hello\x00   world\r\n\n\n\n\tnext   line\x07"

    assert strip_control_characters(raw) == "Hello   world\n\n\n\n\tnext   line"
    assert collapse_whitespace(strip_control_characters(raw)) == "Hello world\n\nnext line"


def test_truncate_appends_marker() -> None:
    text, truncated = truncate("abcdef", 3)

    assert truncated is True
    assert text == "abc" + TRUNCATION_MARKER
    assert truncate("abc", 3) == ("abc", False)


def test_clean_text_can_keep_furniture() -> None:
    text = "Heading\nHeading\nHeading\nPage 42"

    assert clean_text(text, remove_furniture=False) == text
    assert clean_text(text) == ""


def test_lines_holding_only_a_number_are_kept() -> None:
    text = "Revenue grew in\n2023\nas reported.\nUnits sold:\n42"

    assert remove_page_furniture(text) == text


def test_page_label_footers_are_removed_without_repeats() -> None:
    cleaned = remove_page_furniture("Body text.\nAnnual Report - Page 3\nMore body.")

    assert cleaned == "Body text.\nMore body."
    assert remove_page_furniture("- 7 -\nKept.") == "Kept."


def test_c1_control_characters_are_stripped() -> None:
    assert strip_control_characters("caf\x85e\x9b au lait\x80") == "cafe au lait"
