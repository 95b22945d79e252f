import pytest
from pydantic import ValidationError

from pastebin.models import MAX_CONTENT_BYTES, PasteCreate, is_valid_paste_id


def test_accepts_camel_case_fields() -> None:
    paste = PasteCreate.model_validate(
        {"content": "print(1)", "language": "  Python ", "expiresIn": 10, "maxViews": 3}
    )
    assert paste.language == "python"
    assert paste.expires_in == 10
    assert paste.max_views == 3


def test_content_is_stored_verbatim() -> None:
    paste = PasteCreate(content="  indented\n")
    assert paste.content == "  indented\n"


def test_blank_language_becomes_none() -> None:
    assert PasteCreate(content="x", language="   ").language is None


@pytest.mark.parametrize("content", ["", "   ", "\n\t"])
def test_rejects_blank_content(content: str) -> None:
    with pytest.raises(ValidationError):
        PasteCreate(content=content)


def test_accepts_content_of_exactly_500_kib() -> None:
    paste = PasteCreate(content="a" * MAX_CONTENT_BYTES)
    assert len(paste.content) == MAX_CONTENT_BYTES


def test_rejects_content_over_500_kib() -> None:
    with pytest.raises(ValidationError):
        PasteCreate(content="a" * (MAX_CONTENT_BYTES + 1))


def test_content_size_is_measured_in_utf8_bytes() -> None:
    # "é" is two bytes in UTF-8
    with pytest.raises(ValidationError):
        PasteCreate(content="é" * (MAX_CONTENT_BYTES // 2 + 1))


def test_reports_every_failing_field() -> None:
    with pytest.raises(ValidationError) as exc_info:
        PasteCreate.model_validate({"content": " ", "expiresIn": -1, "maxViews": 0})
    assert len(exc_info.value.errors()) == 3


@pytest.mark.parametrize(
    "payload",
    [
        {"content": "x", "expiresIn": 525601},
        {"content": "x", "maxViews": 1_000_001},
        {"content": "x", "maxViews": "5"},
        {"content": "x", "expiresIn": 1.5},
    ],
)
def test_rejects_out_of_range_or_non_integer_limits(payload: dict) -> None:
    with pytest.raises(ValidationError):
        PasteCreate.model_validate(payload)


def test_accepts_limit_bounds() -> None:
    paste = PasteCreate.model_validate({"content": "x", "expiresIn": 525600, "maxViews": 1_000_000})
    assert paste.expires_in == 525600
    assert paste.max_views == 1_000_000


@pytest.mark.parametrize("paste_id", ["abc", "A1b2C3d4", "a" * 20])
def test_valid_paste_ids(paste_id: str) -> None:
    assert is_valid_paste_id(paste_id)


@pytest.mark.parametrize("paste_id", ["", "../etc", "a" * 21, "bad-id", "bad.id", "spa ce"])
def test_invalid_paste_ids(paste_id: str) -> None:
    assert not is_valid_paste_id(paste_id)
