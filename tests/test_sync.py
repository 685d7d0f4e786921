"""Tests for the JSONL TM store and for sync up / sync down between working directories."""

import pytest

from transmem.core import sync
from transmem.exceptions import ConfigurationError
from transmem.stores.fs_delegate import FsStoreDelegate
from transmem.stores.jsonl_tm_store import JsonlTmStore

UPDATED_AT = "2022-05-29T00:00:00+00:00"


def entry(job_guid, provider="P", updated_at=UPDATED_AT):
    job_props = {"job_guid": job_guid, "source_lang": "en", "target_lang": "fr",
                 "status": "done", "translation_provider": provider, "updated_at": updated_at}
    return job_props, [{"guid": f"{job_guid}-tu", "nsrc": ["Hi"], "ntgt": ["Salut"], "q": 50}]


# ============================================================
# JSONL store
# ============================================================

class TestJsonlTmStore:

    @pytest.fixture
    def delegate(self, tmp_path):
        return FsStoreDelegate(tmp_path / "store")

    def test_write_and_read_blocks(self, delegate):
        store = JsonlTmStore("s", delegate, partitioning="job")

        with store.get_writer("en", "fr") as writer:
            writer.write_block("b1", [entry("j1")])

        toc = store.get_toc("en", "fr")
        assert delegate.exists("TOC-sl=en-tl=fr.json")
        assert toc["blocks"]["b1"] == {
            "block_name": "blocks/sl=en/tl=fr/tp=P/block_b1.jsonl",
            "modified": UPDATED_AT,
            "jobs": [["j1", UPDATED_AT]],
        }
        blocks = list(store.get_tm_blocks("en", "fr", ["b1"]))
        assert blocks == [entry("j1")]

    def test_language_partitioning_has_no_provider_directory(self, delegate):
        store = JsonlTmStore("s", delegate)

        assert store.block_name("en", "fr", "b1", "P") == "blocks/sl=en/tl=fr/block_b1.jsonl"

    def test_block_modified_is_latest_job(self, delegate):
        store = JsonlTmStore("s", delegate)

        with store.get_writer("en", "fr") as writer:
            writer.write_block("b1", [entry("j2", updated_at="2023-01-01T00:00:00+00:00"), entry("j1")])

        block = store.get_toc("en", "fr")["blocks"]["b1"]
        assert block["modified"] == "2023-01-01T00:00:00+00:00"
        assert [job_guid for job_guid, _ in block["jobs"]] == ["j1", "j2"]

    def test_missing_block_files_are_dropped_from_toc(self, delegate):
        store = JsonlTmStore("s", delegate)
        with store.get_writer("en", "fr") as writer:
            writer.write_block("b1", [entry("j1")])
            writer.write_block("b2", [entry("j2")])

        delegate.delete_file(store.block_name("en", "fr", "b1"))

        assert list(store.get_toc("en", "fr")["blocks"]) == ["b2"]

    def test_toc_is_not_saved_when_writing_fails(self, delegate):
        store = JsonlTmStore("s", delegate)

        with pytest.raises(RuntimeError):
            with store.get_writer("en", "fr") as writer:
                writer.write_block("b1", [entry("j1")])
                raise RuntimeError("boom")

        assert store.get_toc("en", "fr")["blocks"] == {}

    def test_available_lang_pairs_come_from_tocs(self, delegate):
        store = JsonlTmStore("s", delegate)
        assert store.get_available_lang_pairs() == []

        for target_lang in ("pt-BR", "fr"):
            with store.get_writer("en", target_lang) as writer:
                writer.write_block("b1", [entry(f"j-{target_lang}")])

        assert store.get_available_lang_pairs() == [("en", "fr"), ("en", "pt-BR")]

    def test_unknown_pair_has_empty_toc(self, delegate):
        assert JsonlTmStore("s", delegate).get_toc("en", "de")["blocks"] == {}

    def test_read_only_store_has_no_writer(self, delegate):
        store = JsonlTmStore("s", delegate, access="readonly")

        with pytest.raises(ConfigurationError) as exc_info:
            store.get_writer("en", "fr")
        assert exc_info.value.code == "store_readonly"

    @pytest.mark.parametrize("kwargs,code", [
        ({"access": "sometimes"}, "bad_store_access"),
        ({"partitioning": "random"}, "bad_partitioning"),
    ])
    def test_invalid_settings(self, delegate, kwargs, code):
        with pytest.raises(ConfigurationError) as exc_info:
            JsonlTmStore("s", delegate, **kwargs)
        assert exc_info.value.code == code


# ============================================================
# Sync
# ============================================================

class TestSync:

    @pytest.fixture
    def publisher(self, make_engine, add_fixed_provider):
        engine = make_engine("publisher", resources={"app.json": {"greeting": "Hello", "bye": "Goodbye"}})
        add_fixed_provider(engine)
        engine.push(provider_name="Fixed")
        return engine

    def test_sync_up_plan_and_apply(self, publisher, store_dir):
        plan = publisher.sync_up("shared", dry_run=True)

        assert plan == {"fr": {"blocks_to_update": [], "jobs_to_update": ["xxx0xxx"]}}

        stats = publisher.sync_up("shared")

        assert stats == {"fr": {"blocks_updated": 0, "blocks_created": 1, "jobs_written": 1}}
        assert list((store_dir / "blocks" / "sl=en" / "tl=fr" / "tp=Fixed").glob("block_*.jsonl"))
        assert publisher.sync_up("shared", dry_run=True)["fr"] == {"blocks_to_update": [], "jobs_to_update": []}

    def test_sync_down_into_another_working_directory(self, publisher, make_engine):
        publisher.sync_up("shared")
        subscriber = make_engine("subscriber")

        plan = subscriber.sync_down("shared", dry_run=True)["fr"]
        assert len(plan["blocks_to_store"]) == 1
        assert plan["jobs_to_delete"] == []

        stats = subscriber.sync_down("shared")["fr"]

        assert stats["jobs_stored"] == 1
        assert dict(subscriber.tm_manager.get_job_status_by_lang_pair("en", "fr")) == {"xxx0xxx": "done"}
        entries = subscriber.tm_manager.get_tm("en", "fr").get_all_entries()
        assert sorted(e.ntgt for e in entries) == [("GOODBYE",), ("HELLO",)]
        assert subscriber.sync_down("shared", dry_run=True)["fr"] == {"blocks_to_store": [], "jobs_to_delete": []}

    def test_pending_jobs_travel_with_their_inflight_units(self, make_engine):
        publisher = make_engine("publisher", resources={"app.json": {"greeting": "Hello"}})
        publisher.push(provider_name="Bridge")
        publisher.sync_up("shared")
        subscriber = make_engine("subscriber")

        subscriber.sync_down("shared")

        job = subscriber.tm_manager.get_job("xxx0xxx")
        assert job.status.value == "pending"
        assert len(job.inflight) == 1
        assert [tu.sid for tu in subscriber.tm_manager.get_job_request("xxx0xxx").tus] == ["greeting"]
        marker = subscriber.tm_manager.get_tm("en", "fr").get_entry_by_guid(job.inflight[0])
        assert marker.inflight

    def test_local_jobs_missing_remotely_are_deleted_on_request(self, make_engine, add_fixed_provider):
        engine = make_engine("publisher", resources={"app.json": {"greeting": "Hello", "bye": "Goodbye"}})
        add_fixed_provider(engine)
        engine.push(provider_name="Fixed", tu_filter=lambda tu: tu.sid == "greeting")
        engine.sync_up("shared")
        engine.push(provider_name="Fixed")

        plan = engine.sync_down("shared", dry_run=True)["fr"]
        assert plan == {"blocks_to_store": [], "jobs_to_delete": ["xxx1xxx"]}

        assert engine.sync_down("shared")["fr"]["jobs_deleted"] == 0
        assert engine.tm_manager.get_job("xxx1xxx") is not None

        assert engine.sync_down("shared", delete=True)["fr"]["jobs_deleted"] == 1
        assert engine.tm_manager.get_job("xxx1xxx") is None
        assert engine.tm_manager.get_job("xxx0xxx") is not None
        assert len(engine.tm_manager.get_tm("en", "fr").guids) == 1

    def test_empty_store_has_nothing_to_sync_down(self, publisher):
        assert publisher.sync_down("shared", dry_run=True) == {}

    def test_languages_follow_the_store_not_the_configuration(self, make_engine, add_fixed_provider):
        publisher = make_engine("publisher", resources={"app.json": {"greeting": "Hello"}},
                                target_langs=["fr", "de"])
        add_fixed_provider(publisher)
        publisher.push(target_langs=["de"], provider_name="Fixed")

        assert list(publisher.sync_up("shared")) == ["de"]

        subscriber = make_engine("subscriber")
        assert subscriber.context.target_langs == ["fr"]

        stats = subscriber.sync_down("shared")

        assert list(stats) == ["de"]
        assert stats["de"]["jobs_stored"] == 1
        assert dict(subscriber.tm_manager.get_job_status_by_lang_pair("en", "de")) == {"xxx0xxx": "done"}

    def test_read_only_store_rejects_sync_up(self, make_engine, store_dir, add_fixed_provider):
        engine = make_engine(resources={"app.json": {"greeting": "Hello"}},
                             tm_stores={"ro": {"base_dir": str(store_dir), "access": "readonly"}})
        add_fixed_provider(engine)
        engine.push(provider_name="Fixed")

        for dry_run in (True, False):
            with pytest.raises(ConfigurationError) as exc_info:
                engine.sync_up("ro", dry_run=dry_run)
            assert exc_info.value.code == "store_readonly"

    def test_prepare_sync_up_rejects_read_only_store(self, engine, store_dir):
        store = JsonlTmStore("ro", FsStoreDelegate(store_dir), access="readonly")

        with pytest.raises(ConfigurationError) as exc_info:
            sync.prepare_sync_up(engine.tm_manager, store, "en", "fr")
        assert exc_info.value.code == "store_readonly"

    def test_write_only_store_rejects_sync_down(self, make_engine, store_dir):
        engine = make_engine(tm_stores={"wo": {"base_dir": str(store_dir), "access": "writeonly"}})

        with pytest.raises(ConfigurationError) as exc_info:
            engine.sync_down("wo")
        assert exc_info.value.code == "store_writeonly"

    def test_unknown_store(self, engine):
        with pytest.raises(ConfigurationError) as exc_info:
            engine.sync_up("nowhere")
        assert exc_info.value.code == "unknown_store"
