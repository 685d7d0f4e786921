"""Tests for the HTTP translation provider, with httpx.MockTransport standing in for the API."""

import json

import httpx
import pytest

from transmem.core.models import Job, JobStatus, TranslationUnit
from transmem.exceptions import ConfigurationError, ProviderError
from transmem.normalization import Placeholder
from transmem.providers.http import HttpTranslationProvider
from transmem.translation.utils import chunk_tus, parse_translations_response

API_URL = "https://mt.example.com/v1/chat/completions"


def completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}], "usage": {}})


def make_provider(engine, handler, **kwargs):
    params = {"api_key": "test-key", "api_url": API_URL, "model": "test-model", "max_workers": 1}
    params.update(kwargs)
    provider = HttpTranslationProvider(engine.context, "Mock", transport=httpx.MockTransport(handler), **params)
    provider.sleep = lambda seconds: None
    return provider


def job_with(*tus):
    return Job(source_lang="en", target_lang="fr", job_guid="j1", tus=tuple(tus))


HELLO = TranslationUnit(guid="g1", rid="app.json", sid="hello", nsrc=("Hello ", Placeholder(t="x", v="{name}")))
BYE = TranslationUnit(guid="g2", rid="app.json", sid="bye", nsrc=("Goodbye",), notes={"desc": "Farewell"})


class TestHttpTranslationProvider:

    def test_translates_with_placeholders(self, engine):
        calls = []

        def handler(request: httpx.Request):
            calls.append(json.loads(request.content))
            return completion(json.dumps(["Bonjour {{a_x_name}}", "Au revoir"]))

        response = make_provider(engine, handler, cost_per_word=0.5).request_translations(job_with(HELLO, BYE))

        assert response.status == JobStatus.DONE
        assert response.translation_provider == "Mock"
        hello, bye = response.tus
        assert hello.ntgt == ("Bonjour ", Placeholder(t="x", v="{name}", v1="a_x_name"))
        assert bye.ntgt == ("Au revoir",)
        assert (hello.q, hello.ts, bye.cost) == (40, 1, 0.5)

        prompt = calls[0]["messages"][1]["content"]
        assert "Hello {{a_x_name}}" in prompt
        assert "Farewell" in prompt
        assert calls[0]["model"] == "test-model"

    def test_sends_bearer_token(self, engine):
        seen = {}

        def handler(request: httpx.Request):
            seen["auth"] = request.headers["Authorization"]
            return completion('["Au revoir"]')

        make_provider(engine, handler).request_translations(job_with(BYE))

        assert seen["auth"] == "Bearer test-key"

    def test_retries_server_errors(self, engine):
        attempts = []

        def handler(request: httpx.Request):
            attempts.append(1)
            if len(attempts) == 1:
                return httpx.Response(503, json={"error": {"message": "overloaded"}})
            return completion('```json\n["Au revoir"]\n```')

        response = make_provider(engine, handler).request_translations(job_with(BYE))

        assert len(attempts) == 2
        assert response.tus[0].ntgt == ("Au revoir",)

    def test_does_not_retry_auth_errors(self, engine):
        attempts = []

        def handler(request: httpx.Request):
            attempts.append(1)
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        with pytest.raises(ProviderError) as exc_info:
            make_provider(engine, handler).request_translations(job_with(BYE))

        assert len(attempts) == 1
        assert exc_info.value.code == "http_401"
        assert exc_info.value.details["status_code"] == 401

    def test_count_mismatch_is_retried_once(self, engine):
        attempts = []

        def handler(request: httpx.Request):
            attempts.append(1)
            return completion('["one", "two"]')

        with pytest.raises(ProviderError) as exc_info:
            make_provider(engine, handler).request_translations(job_with(BYE))

        assert exc_info.value.code == "count_mismatch"
        assert len(attempts) == 2

    def test_drops_translations_with_wrong_placeholders(self, engine):
        def handler(request: httpx.Request):
            return completion('["Bonjour", "Au revoir"]')

        response = make_provider(engine, handler).request_translations(job_with(HELLO, BYE))

        assert [tu.guid for tu in response.tus] == ["g2"]

    def test_missing_api_key(self, engine):
        provider = make_provider(engine, lambda request: completion("[]"), api_key="YOUR_API_KEY_HERE")

        with pytest.raises(ConfigurationError):
            provider.request_translations(job_with(BYE))

    def test_chunks_are_merged_in_order(self, engine):
        def handler(request: httpx.Request):
            prompt = json.loads(request.content)["messages"][1]["content"]
            texts = json.loads(prompt.split("Array to translate:\n")[1].split("\n")[0])
            return completion(json.dumps([text.upper() for text in texts]))

        tus = [TranslationUnit(guid=f"g{i}", sid=f"s{i}", nsrc=(f"word number {i}",)) for i in range(5)]
        provider = make_provider(engine, handler, chunk_size_words=6, max_workers=3)

        response = provider.request_translations(job_with(*tus))

        assert [tu.ntgt for tu in response.tus] == [(f"WORD NUMBER {i}",) for i in range(5)]


class TestTranslationUtils:

    def test_chunking_respects_word_budget(self):
        tus = [TranslationUnit(guid=str(i), nsrc=("one two three",)) for i in range(4)]

        chunks = chunk_tus(tus, max_words=6)

        assert [[idx for idx, _ in chunk] for chunk in chunks] == [[0, 1], [2, 3]]

    def test_oversized_unit_gets_own_chunk(self):
        tus = [TranslationUnit(guid="a", nsrc=("one two three four",)), TranslationUnit(guid="b", nsrc=("x",))]
        assert len(chunk_tus(tus, max_words=2)) == 2

    @pytest.mark.parametrize("text,expected", [
        ('["a", "b"]', ["a", "b"]),
        ('Sure! ["a [x]", "b"] hope it helps', ["a [x]", "b"]),
        ('{"translations": ["a"]}', ["a"]),
        ("not json", None),
    ])
    def test_parse_translations_response(self, text, expected):
        assert parse_translations_response(text) == expected
