import hashlib

import pytest

from conftest import solve
from humangate.security.challenge import ALPHABET, ChallengeGenerator, digest, validate


def test_alphabet_excludes_confusable_characters():
    for ch in "0O1lIoi":
        assert ch not in ALPHABET
    assert "2" in ALPHABET and "9" in ALPHABET
    assert "a" in ALPHABET and "Z" in ALPHABET


def test_generated_challenges_respect_length_and_alphabet():
    gen = ChallengeGenerator()
    lengths = set()
    for _ in range(300):
        challenge = gen.generate()
        answer = solve(challenge.display.glyphs)
        assert 5 <= len(answer) <= 7
        assert challenge.display.length == len(answer)
        assert all(ch in ALPHABET for ch in answer)
        lengths.add(len(answer))
    assert lengths == {5, 6, 7}


def test_digest_is_sha256_of_lowercased_answer():
    challenge = ChallengeGenerator().generate()
    answer = solve(challenge.display.glyphs)
    expected = hashlib.sha256(answer.lower().encode("utf-8")).hexdigest()
    assert challenge.secret_digest == expected
    assert answer not in challenge.secret_digest


def test_glyph_jitter_ranges():
    challenge = ChallengeGenerator(min_length=7, max_length=7).generate()
    for glyph in challenge.display.glyphs:
        assert -10.0 <= glyph.rotation <= 10.0
        assert 0.8 <= glyph.scale <= 1.3
        assert 0.0 <= glyph.offset <= 5.0
        assert all(0 <= c < 100 for c in glyph.color)


def test_fixed_length_range():
    gen = ChallengeGenerator(min_length=6, max_length=6)
    assert {gen.generate().display.length for _ in range(20)} == {6}


@pytest.mark.parametrize("lo,hi", [(0, 5), (6, 5), (-1, 3)])
def test_invalid_length_range_rejected(lo, hi):
    with pytest.raises(ValueError):
        ChallengeGenerator(min_length=lo, max_length=hi)


@pytest.mark.parametrize("answer", ["abcde", "XyZ23", "Hk7mPq", "aB3dE9f"])
def test_validate_accepts_answer_in_any_case(answer):
    secret = digest(answer)
    assert validate(answer.lower(), secret)
    assert validate(answer.upper(), secret)


def test_validate_hashes_input_as_given():
    assert validate(" ab", digest(" ab"))
    assert validate("a b", digest("A B"))
    assert not validate("ab", digest(" ab"))


def test_validate_rejects_different_answers():
    secret = digest("abcde")
    assert not validate("abcdf", secret)
    assert not validate("abcd", secret)
    assert not validate("abcdee", secret)


@pytest.mark.parametrize("user_input,secret", [("", digest("x")), (None, digest("x")), ("abc", ""), ("abc", None), ("   ", digest(""))])
def test_validate_fails_closed_on_missing_input(user_input, secret):
    assert validate(user_input, secret) is False
