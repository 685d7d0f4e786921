"""
HTTP Translation Provider

Machine translation through an OpenAI-compatible chat completions API:
- Sources are flattened with v1 placeholders (``{{a_x_name}}``)
- Units are split in word-budget chunks sent concurrently
- Each chunk is retried with a backoff that depends on the failure
- Results are merged back in the order of the request
"""

import json
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from transmem.config import DEFAULT_CHUNK_SIZE_WORDS, DEFAULT_SYSTEM_MESSAGE, get_prompt
from transmem.core.models import Job, TranslationUnit
from transmem.exceptions import ConfigurationError, ProviderError
from transmem.logger import get_logger
from transmem.normalization import (
    count_words,
    extract_normalized_parts_v1,
    flatten_normalized_source_v1,
    normalized_strings_are_equal,
    source_and_target_are_compatible,
)
from transmem.providers.base import TranslationProvider
from transmem.translation.utils import chunk_tus, parse_translations_response

logger = get_logger(__name__)


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', 120.0),
            pool=timeout_config.get('pool', 10.0),
        )
    timeout_value = float(timeout_config) if timeout_config else 120.0
    return httpx.Timeout(connect=10.0, write=60.0, read=timeout_value, pool=10.0)


def handle_http_error(e: httpx.HTTPStatusError, provider: str):
    """Turn an HTTP error response into a ProviderError carrying the status code."""
    status_code = e.response.status_code
    try:
        error_json = e.response.json()
        error_detail = error_json.get("error", error_json) if isinstance(error_json, dict) else error_json
        if isinstance(error_detail, dict):
            error_text = error_detail.get("message", str(error_detail))
        else:
            error_text = str(error_detail)
    except ValueError:
        error_text = e.response.text[:500]

    raise ProviderError(
        f"{provider} API error ({status_code}): {error_text}",
        code=f"http_{status_code}",
        details={"provider": provider, "status_code": status_code},
    ) from e


def _note_text(notes) -> Optional[str]:
    if isinstance(notes, dict):
        return notes.get("desc")
    return notes or None


class HttpTranslationProvider(TranslationProvider):
    """Provider calling an OpenAI-compatible chat completions endpoint."""

    def __init__(self, context, id: str, api_key: str, api_url: str, model: str,
                 quality: int = 40, chunk_size_words: int = DEFAULT_CHUNK_SIZE_WORDS,
                 max_retries: int = 3, timeout: Any = 120, max_workers: int = 4,
                 system_message: str = DEFAULT_SYSTEM_MESSAGE, instructions: str = "",
                 transport: Optional[httpx.BaseTransport] = None, **kwargs):
        super().__init__(context, id, quality=quality, **kwargs)
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.chunk_size_words = chunk_size_words or DEFAULT_CHUNK_SIZE_WORDS
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self.system_message = system_message
        self.instructions = instructions
        self.transport = transport
        # Backoff can be shortened (e.g. in tests) without touching the strategy
        self.sleep = time.sleep

    def info(self):
        return {**super().info(), "api_url": self.api_url, "model": self.model,
                "chunk_size_words": self.chunk_size_words}

    # ============================================================
    # API call
    # ============================================================

    def _call_api(self, prompt: str) -> str:
        if not self.api_key or self.api_key == "YOUR_API_KEY_HERE":
            raise ConfigurationError(f"{self.id} API key not configured",
                                     code="api_key_missing", details={"provider": self.id})

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_message},
                {"role": "user", "content": prompt},
            ],
        }

        logger.debug(f"  Calling {self.id} API (model: {self.model})...")
        try:
            with httpx.Client(timeout=get_httpx_timeout(self.timeout), transport=self.transport) as client:
                response = client.post(self.api_url, headers=headers, json=body)
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            handle_http_error(e, self.id)
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.id} API request timeout", code="timeout",
                                details={"provider": self.id}) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.id} API call failed: {e}", code="network",
                                details={"provider": self.id}) from e

        choices = result.get("choices") or []
        if not choices:
            raise ProviderError(f"No content in {self.id} response", code="empty_response")
        content = choices[0].get("message", {}).get("content", "")
        logger.debug(f"  Received {len(content)} chars from {self.id} (usage: {result.get('usage', {})})")
        return content

    def build_prompt(self, texts: List[str], source_lang: str, target_lang: str, notes: Sequence[str] = ()) -> str:
        template = get_prompt('array_translation_prompt')['prompt']
        instructions = [self.instructions] if self.instructions else []
        instructions.extend(notes)
        instructions_section = "\nNotes:\n" + "\n".join(f"- {n}" for n in instructions) if instructions else ""
        return template.format(
            source_language_name=source_lang,
            source_language_code=source_lang,
            target_language_name=target_lang,
            target_language_code=target_lang,
            instructions_section=instructions_section,
            text_count=len(texts),
            texts_json=json.dumps(texts, ensure_ascii=False),
        )

    def _categorize_error(self, error: Exception, attempt: int) -> Tuple[bool, float]:
        """
        Decide whether to retry after an error.

        Returns:
            Tuple of (should_retry, wait_time_seconds)
        """
        if isinstance(error, ConfigurationError):
            return False, 0
        code = getattr(error, "code", None) or ""
        status_code = getattr(error, "details", {}).get("status_code")

        # Rate limiting - long backoff
        if status_code == 429:
            return True, min(30 * (2 ** attempt), 300)
        # Authentication and invalid requests - don't retry
        if status_code in (400, 401, 403):
            return False, 0
        # Server errors - standard backoff
        if status_code and status_code >= 500:
            return True, 2 ** attempt
        if code == "timeout":
            return True, 5 * (2 ** attempt)
        # Unparseable answers - retry once
        if code in ("parse_error", "count_mismatch"):
            return attempt < 1, 1.0
        return True, 2 ** attempt

    # ============================================================
    # Translation
    # ============================================================

    def translate_chunk(self, job: Job, chunk: List[Tuple[int, TranslationUnit]]) -> List[Tuple[int, TranslationUnit]]:
        """Translate one chunk, retrying on failure; returns (position, translated tu) pairs."""
        flattened = [(idx, tu, *flatten_normalized_source_v1(tu.nsrc or [])) for idx, tu in chunk]
        texts = [text for _, _, text, _ in flattened]
        notes = [f"String {n + 1}: {note}" for n, (_, tu, _, _) in enumerate(flattened)
                 for note in [_note_text(tu.notes)] if note]
        prompt = self.build_prompt(texts, job.source_lang, job.target_lang, notes)

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                if attempt > 0:
                    logger.info(f"  Retry attempt {attempt + 1}/{self.max_retries}")
                translations = parse_translations_response(self._call_api(prompt))
                if translations is None:
                    raise ProviderError("Could not parse translations from response", code="parse_error")
                if len(translations) != len(texts):
                    raise ProviderError(f"Translation count mismatch: expected {len(texts)}, got {len(translations)}",
                                        code="count_mismatch")
                return self._make_tus(flattened, translations)
            except (ProviderError, ConfigurationError) as e:
                last_error = e
                should_retry, wait_time = self._categorize_error(e, attempt)
                if should_retry and attempt < self.max_retries - 1:
                    logger.warning(f"  Attempt {attempt + 1} failed: {e}. Waiting {wait_time}s before retry...")
                    self.sleep(wait_time)
                elif not should_retry:
                    logger.error(f"  Non-recoverable error: {e}")
                    break

        logger.error(f"{self.id} failed to translate a chunk of {len(chunk)} units after {self.max_retries} attempts")
        raise last_error

    def _make_tus(self, flattened, translations: List[str]) -> List[Tuple[int, TranslationUnit]]:
        ts = 1 if self.context.regression else self.context.now_ms()
        results = []
        for (idx, tu, _, ph_map), text in zip(flattened, translations):
            try:
                ntgt = extract_normalized_parts_v1(text, ph_map)
            except KeyError as e:
                logger.warning(f"Unknown placeholder {e} in translation of {tu.guid}, skipping it")
                continue
            if not source_and_target_are_compatible(tu.nsrc, ntgt):
                logger.warning(f"Translation of {tu.guid} lost or added placeholders, skipping it")
                continue
            cost = None
            if self.cost_per_word is not None:
                cost = count_words(tu.nsrc or []) * self.cost_per_word
            results.append((idx, replace(tu.as_source(), ntgt=tuple(ntgt), q=self.quality, ts=ts, cost=cost)))
        return results

    def request_translations(self, job: Job) -> Job:
        chunks = chunk_tus(job.tus, self.chunk_size_words)
        logger.info(f"{self.id}: translating {len(job.tus)} units {job.source_lang} -> {job.target_lang} "
                    f"in {len(chunks)} chunks")
        if self.max_workers > 1 and len(chunks) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(chunks))) as executor:
                chunk_results = list(executor.map(lambda c: self.translate_chunk(job, c), chunks))
        else:
            chunk_results = [self.translate_chunk(job, c) for c in chunks]

        merged = sorted((pair for result in chunk_results for pair in result), key=lambda pair: pair[0])
        return self.make_response(job, [tu for _, tu in merged])

    def refresh_translations(self, job: Job) -> Job:
        current = {tu.guid: tu.ntgt for tu in job.tus}
        response = self.request_translations(job)
        return response.with_tus(
            tu for tu in response.tus if not normalized_strings_are_equal(current.get(tu.guid), tu.ntgt)
        )
