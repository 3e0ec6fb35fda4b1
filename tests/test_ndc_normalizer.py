import pytest

from ndc.normalizer import CANONICAL_NDC_RE, ndc_digits, normalize_ndc, try_normalize_ndc
from utils.errors import ValidationError


def test_normalize_ndc_pads_ten_digit_codes():
    assert normalize_ndc("1234-5678-90") == "01234-5678-90"
    assert normalize_ndc("1234567890") == "01234-5678-90"
    assert normalize_ndc("01234567890") == "01234-5678-90"


def test_normalize_ndc_is_idempotent_and_canonical():
    for code in ["1234567890", "01234567890", "12345-6789-01", "0002-3227-30", "00002 3227 30"]:
        once = normalize_ndc(code)
        assert normalize_ndc(once) == once
        assert CANONICAL_NDC_RE.match(once)


def test_normalize_ndc_rejects_bad_input():
    for bad in ["", "123", "abc-defg-hi", "123456789012", "1234-5678-9O"]:
        with pytest.raises(ValidationError):
            normalize_ndc(bad)
    assert try_normalize_ndc("nope") == ""


def test_ndc_digits():
    assert ndc_digits("12345-6789-01") == "12345678901"
    assert ndc_digits("12-34") == ""
