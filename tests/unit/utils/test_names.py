import pytest

from arc.utils import generate_name, generate_unique_name, is_valid_name, sanitize_name
from arc.utils._names import ADJECTIVES, NOUNS


class TestGenerateName:
    def test_combines_adjective_and_noun(self) -> None:
        adjective, noun = generate_name().split("-")

        assert adjective in ADJECTIVES
        assert noun in NOUNS

    def test_generated_names_are_valid(self) -> None:
        assert all(is_valid_name(generate_name()) for _ in range(50))

    def test_unique_name_avoids_existing(self) -> None:
        existing = {f"{adjective}-{NOUNS[0]}" for adjective in ADJECTIVES}

        for _ in range(20):
            assert generate_unique_name(existing) not in existing

    def test_exhausted_space_falls_back_to_timestamp(self) -> None:
        existing = {f"{adjective}-{noun}" for adjective in ADJECTIVES for noun in NOUNS}

        assert generate_unique_name(existing).startswith("arc-")


class TestIsValidName:
    @pytest.mark.parametrize("name", ["a", "my-app", "app2", "a" * 63])
    def test_valid(self, name: str) -> None:
        assert is_valid_name(name)

    @pytest.mark.parametrize("name", ["", "-app", "app-", "My-App", "my_app", "a" * 64])
    def test_invalid(self, name: str) -> None:
        assert not is_valid_name(name)


class TestSanitizeName:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("My Project", "my-project"),
            ("api__server", "api-server"),
            ("--edge--", "edge"),
            ("already-valid", "already-valid"),
        ],
    )
    def test_sanitizes(self, raw: str, expected: str) -> None:
        assert sanitize_name(raw) == expected

    def test_long_names_are_truncated(self) -> None:
        result = sanitize_name("x" * 100)

        assert result == "x" * 63

    def test_unusable_names_become_random(self) -> None:
        result = sanitize_name("!!!")

        assert is_valid_name(result)
        assert result.count("-") == 1
