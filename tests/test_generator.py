"""Tests for keyward.core.generator."""

import pytest

from keyward.core.generator import (
    ALL_CHARS,
    DIGITS,
    LOWER,
    SYMBOLS,
    UPPER,
    generate_password,
    mask_password,
)


class TestGeneratePassword:
    @pytest.mark.parametrize("length", [4, 5, 12, 20, 64])
    def test_length_and_classes(self, length):
        for _ in range(50):
            password = generate_password(length)
            assert len(password) == length
            assert any(c in UPPER for c in password)
            assert any(c in LOWER for c in password)
            assert any(c in DIGITS for c in password)
            assert any(c in SYMBOLS for c in password)
            assert all(c in ALL_CHARS for c in password)

    def test_no_ambiguous_characters(self):
        for alphabet in (UPPER, LOWER, DIGITS):
            for ambiguous in "O0l1":
                assert ambiguous not in alphabet
        joined = "".join(generate_password(64) for _ in range(50))
        assert not set("O0l1") & set(joined)

    def test_default_length(self):
        assert len(generate_password()) == 20

    def test_too_short(self):
        with pytest.raises(ValueError):
            generate_password(3)

    def test_class_positions_vary(self):
        # The guaranteed class characters must not always land first
        firsts = {generate_password(4)[0] in UPPER for _ in range(200)}
        assert firsts == {True, False}

    def test_unique(self):
        assert len({generate_password() for _ in range(100)}) == 100


class TestMaskPassword:
    def test_mask(self):
        assert mask_password("Abcd3fgh!") == "Abcd" + "*" * 12

    def test_short(self):
        assert mask_password("ab") == "ab" + "*" * 12
