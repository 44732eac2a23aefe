from inventory_backend.services.passwords import PasswordHasher

hasher = PasswordHasher(rounds=4)


def test_hash_round_trip():
    password_hash = hasher.hash("correct horse battery")

    assert hasher.verify("correct horse battery", password_hash) is True
    assert hasher.verify("wrong horse battery", password_hash) is False


def test_hash_is_salted():
    first = hasher.hash("same-password")
    second = hasher.hash("same-password")

    assert first != second
    assert hasher.verify("same-password", first)
    assert hasher.verify("same-password", second)


def test_hash_uses_configured_rounds():
    assert hasher.hash("rounds-check").startswith("$2b$04$")


def test_verify_returns_false_for_malformed_hash():
    assert hasher.verify("anything", "not-a-bcrypt-hash") is False
    assert hasher.verify("anything", "") is False
    assert hasher.verify("anything", None) is False


def test_passwords_longer_than_72_bytes_are_truncated_consistently():
    long_password = "a" * 72 + "tail-one"
    password_hash = hasher.hash(long_password)

    assert hasher.verify(long_password, password_hash)
    assert hasher.verify("a" * 72 + "tail-two", password_hash)
    assert not hasher.verify("a" * 71, password_hash)
