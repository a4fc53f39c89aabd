from lingua.utils.text import preview, safe_truncate


def test_short_text_is_untouched():
    assert safe_truncate("hello", 10) == "hello"
    assert safe_truncate(None, 10) == ""


def test_truncates_at_word_boundary():
    assert safe_truncate("hello wonderful world", 12) == "hello..."


def test_preview_is_single_line():
    assert preview("a\n\tb\x00c") == "a bc"
    assert preview("") == ""
    assert preview("word " * 100, max_chars=20).endswith("...")
