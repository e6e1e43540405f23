"""Tests for reply template rendering."""

import pytest

from autoreply.webhook import ResponseComposer
from tests.helpers.fakes import build_rule


@pytest.fixture
def composer():
    return ResponseComposer()


class TestComposeDm:
    """Tests for ResponseComposer.compose_dm."""

    def test_renders_username(self, composer):
        rule = build_rule("harga")
        assert composer.compose_dm(rule, "buyer") == "Hi buyer, here is the info about harga"

    def test_missing_username_renders_empty(self, composer):
        rule = build_rule("harga")
        assert composer.compose_dm(rule) == "Hi , here is the info about harga"

    def test_appends_product_link(self, composer):
        rule = build_rule("harga", product_link="https://shop.example.com/p/1")

        message = composer.compose_dm(rule, "buyer")

        assert message == "Hi buyer, here is the info about harga\n\nhttps://shop.example.com/p/1"

    def test_link_not_appended_twice(self, composer):
        rule = build_rule(
            "harga",
            dm_message="Order here: {{ product_link }}",
            product_link="https://shop.example.com/p/1",
        )

        assert composer.compose_dm(rule) == "Order here: https://shop.example.com/p/1"

    def test_link_disabled(self, composer):
        rule = build_rule("harga", product_link="https://shop.example.com/p/1", include_product_link=False)

        assert "https://" not in composer.compose_dm(rule, "buyer")

    def test_keyword_variable(self, composer):
        rule = build_rule("stok", dm_message="About {{ keyword|upper }}")
        assert composer.compose_dm(rule) == "About STOK"


class TestComposeFallback:
    """Tests for ResponseComposer.compose_fallback."""

    def test_plain_text(self, composer):
        assert composer.compose_fallback(build_rule("harga")) == "Check your DMs!"

    def test_mentions_user(self, composer):
        rule = build_rule("harga", fallback_comment="@{{ username }} check your DMs")
        assert composer.compose_fallback(rule, "buyer") == "@buyer check your DMs"


class TestRenderFailures:
    """Templates that cannot render are sent as written."""

    @pytest.mark.parametrize(
        "source",
        [
            "Hi {{ username ",
            "Hi {{ nickname }}",
            "{{ ''.__class__.__mro__ }}",
        ],
    )
    def test_source_returned(self, composer, source):
        rule = build_rule("harga", fallback_comment=source)
        assert composer.compose_fallback(rule, "buyer") == source

    def test_templates_are_compiled_once(self, composer):
        rule = build_rule("harga")
        composer.compose_dm(rule, "a")
        composer.compose_dm(rule, "b")

        info = composer._compile.cache_info()
        assert info.currsize == 1
        assert info.hits == 1

    def test_compiled_templates_are_bounded(self):
        composer = ResponseComposer(cache_size=2)
        for keyword in ("harga", "stok", "warna"):
            composer.compose_fallback(build_rule(keyword, fallback_comment=f"{keyword} {{{{ username }}}}"), "buyer")

        info = composer._compile.cache_info()
        assert info.currsize == 2
        assert info.misses == 3
