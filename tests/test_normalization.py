"""Tests for the normalizer/codec and the placeholder helpers."""

import pytest

from transmem.normalization import (
    MessageFormatNormalizer,
    Placeholder,
    android_message_normalizer,
    count_words,
    decoder_maker,
    encoder_maker,
    extract_normalized_parts_v1,
    extract_structured_notes,
    flatten_normalized_source_v1,
    gated_encoder,
    get_normalized_string,
    is_balanced,
    json_message_normalizer,
    keyword_translator_maker,
    named_decoder,
    normalized_strings_are_equal,
    protected_terms_decoder,
    source_and_target_are_compatible,
)
from transmem.normalization.normalizers import (
    double_percent_decoder,
    double_percent_encoder,
    printf_ph_decoder,
)


class TestDecoding:

    def test_json_normalizer_decodes_braces_and_tags(self):
        nstr = json_message_normalizer().decode("Hello {name}, <b>welcome</b>")

        assert nstr == [
            "Hello ",
            Placeholder(t="x", v="{name}"),
            ", ",
            Placeholder(t="bx", v="<b>"),
            "welcome",
            Placeholder(t="ex", v="</b>"),
        ]

    def test_json_normalizer_renders_back_the_original_text(self):
        normalizer = json_message_normalizer()
        text = "Hi {{user}}, you have %d <i>new</i> messages"

        assert normalizer.encode(normalizer.decode(text)) == text

    def test_self_closing_tag_is_a_standalone_placeholder(self):
        nstr = json_message_normalizer().decode("Line<br/>break")
        assert nstr[1] == Placeholder(t="x", v="<br/>")

    def test_decoding_keeps_existing_placeholders(self):
        decoder = decoder_maker("digits", r"(?P<d>\d+)", lambda groups: Placeholder(t="x", v=groups["d"]))
        first = get_normalized_string("Room 12", [decoder])
        again = get_normalized_string("Room 12", [decoder, decoder])

        assert first == again == ["Room ", Placeholder(t="x", v="12")]

    def test_flags_record_decoders_producing_text(self):
        flags = {}
        nstr = android_message_normalizer().decode("It\\'s %s", flags)

        assert nstr == ["It's ", Placeholder(t="x", v="%s")]
        assert flags.get("androidEscapesDecoder") is True

    def test_android_encoder_escapes_literal_text(self):
        normalizer = android_message_normalizer()
        assert normalizer.encode(["It's ", Placeholder(t="x", v="%s")]) == "It\\'s %s"

    def test_protected_terms_become_placeholders(self):
        decoder = protected_terms_decoder(["Acme Cloud", "Acme"])
        nstr = get_normalized_string("Try Acme Cloud today", [decoder])

        assert nstr == ["Try ", Placeholder(t="x", v="Acme Cloud", s="Acme Cloud"), " today"]

    def test_unbalanced_tags_are_decoded_but_detected(self):
        nstr = json_message_normalizer().decode("<b>bold")

        assert nstr == [Placeholder(t="bx", v="<b>"), "bold"]
        assert not is_balanced(nstr)
        assert is_balanced(json_message_normalizer().decode("<b>bold</b>"))


class TestEncoders:

    def test_encoder_with_match_map(self):
        encoder = encoder_maker("amp", r"(&)", {"&": "&amp;"})
        assert encoder("Salt & Pepper") == "Salt &amp; Pepper"

    def test_gated_encoder_runs_only_when_flag_set(self):
        encoder = gated_encoder(encoder_maker("amp", r"(&)", {"&": "&amp;"}), "xmlEntityDecoder")

        assert encoder("a & b", {}) == "a & b"
        assert encoder("a & b", {"xmlEntityDecoder": True}) == "a &amp; b"

    def test_negated_gate(self):
        encoder = gated_encoder(encoder_maker("amp", r"(&)", {"&": "&amp;"}), "!raw")

        assert encoder("a & b", {}) == "a &amp; b"
        assert encoder("a & b", {"raw": True}) == "a & b"

    def test_double_percent_is_restored_only_when_it_was_decoded(self):
        normalizer = MessageFormatNormalizer(
            decoders=[double_percent_decoder, printf_ph_decoder],
            text_encoders=[gated_encoder(double_percent_encoder, "doublePercentDecoder")],
        )
        flags = {}

        nstr = normalizer.decode("100%% of %s", flags)

        assert nstr == ["100% of ", Placeholder(t="x", v="%s")]
        assert flags == {"doublePercentDecoder": True}
        assert normalizer.encode(nstr, flags) == "100%% of %s"
        assert normalizer.encode(nstr) == "100% of %s"


class TestDecoderFactories:

    def test_named_decoder_renames_its_flag(self):
        decoder = named_decoder("percentUnescaper", double_percent_decoder)
        flags = {}

        assert decoder.__name__ == "percentUnescaper"
        assert get_normalized_string("50%%", [decoder], flags) == ["50%"]
        assert flags == {"percentUnescaper": True}

    def test_keyword_translator(self):
        decoder, encoder = keyword_translator_maker("brand", {"Acme": {"fr": "Acmé"}, "Widget": "Gadget"})
        normalizer = MessageFormatNormalizer(decoders=[decoder], code_encoders=[encoder])

        nstr = normalizer.decode("Buy Acme Widget")

        assert nstr == [
            "Buy ",
            Placeholder(t="x", v="brand:Acme", s="Acme"),
            " ",
            Placeholder(t="x", v="brand:Widget", s="Widget"),
        ]
        assert normalizer.encode(nstr, {"target_lang": "fr"}) == "Buy Acmé Widget"
        assert normalizer.encode(nstr, {"target_lang": "de"}) == "Buy Acme Widget"

    def test_keyword_translator_needs_keywords(self):
        with pytest.raises(ValueError):
            keyword_translator_maker("brand", {})


class TestPlaceholderHelpers:

    def test_flatten_v1_names_placeholders_by_position_and_type(self):
        text, ph_map = flatten_normalized_source_v1(["Hi ", Placeholder(t="x", v="{name}"), "!"])

        assert text == "Hi {{a_x_name}}!"
        assert ph_map["a_x_name"].v == "{name}"

    def test_extract_v1_restores_placeholders(self):
        nsrc = ["Hi ", Placeholder(t="x", v="{name}"), "!"]
        _, ph_map = flatten_normalized_source_v1(nsrc)

        ntgt = extract_normalized_parts_v1("Salut {{a_x_name}} !", ph_map)

        assert ntgt[0] == "Salut "
        assert ntgt[1].v == "{name}"
        assert source_and_target_are_compatible(nsrc, ntgt)

    def test_extract_v1_rejects_unknown_placeholder(self):
        with pytest.raises(KeyError):
            extract_normalized_parts_v1("Salut {{b_x_other}}", {})

    def test_compatibility_requires_same_placeholder_count(self):
        nsrc = ["Hi ", Placeholder(t="x", v="{name}")]

        assert not source_and_target_are_compatible(nsrc, ["Salut"])
        assert not source_and_target_are_compatible(nsrc, ["Salut ", Placeholder(t="x", v="{other}")])
        assert source_and_target_are_compatible(nsrc, [Placeholder(t="x", v="{name}"), " salut"])

    def test_normalized_strings_equality(self):
        assert normalized_strings_are_equal(["a", Placeholder(t="x", v="{n}")], ["a", Placeholder(t="x", v="{n}")])
        assert not normalized_strings_are_equal(["a"], ["b"])
        assert not normalized_strings_are_equal(["a"], None)

    def test_count_words(self):
        assert count_words(["Hello ", Placeholder(t="x", v="{name}"), ", how are you?"]) == 4
        assert count_words(["你好"]) == 2
        assert count_words([]) == 0

    def test_structured_notes(self):
        notes = extract_structured_notes("Greeting PH({name}|Joe|user name) MAXWIDTH(20)")

        assert notes["ph"] == {"{name}": {"sample": "Joe", "desc": "user name"}}
        assert notes["max_width"] == 20
        assert notes["desc"] == "Greeting"
