"""Tests for the push / pull workflow driven by the dispatcher."""

import json

import pytest

from transmem.core.identity import make_segment_guid
from transmem.core.models import JobStatus
from transmem.exceptions import ConfigurationError, ConsistencyError


def job_statuses(engine):
    return dict(engine.tm_manager.get_job_status_by_lang_pair("en", "fr"))


def fr_entry(engine, guid):
    return engine.tm_manager.get_tm("en", "fr").get_entry_by_guid(guid)


# ============================================================
# Push
# ============================================================

class TestPush:

    def test_push_translates_missing_units(self, engine, add_fixed_provider):
        provider = add_fixed_provider(engine)

        result = engine.push(provider_name="fixed")

        assert result == [{
            "source_lang": "en", "target_lang": "fr", "provider": "Fixed",
            "job_guid": "xxx0xxx", "status": "done", "num": 2,
        }]
        assert len(provider.requests) == 1
        greeting = fr_entry(engine, make_segment_guid("app.json", "greeting", ["Hello"]))
        assert greeting.ntgt == ("HELLO",)
        assert greeting.q == 80
        assert greeting.job_guid == "xxx0xxx"
        assert greeting.translation_provider == "Fixed"

    def test_second_push_has_nothing_to_send(self, engine, add_fixed_provider):
        add_fixed_provider(engine)
        engine.push(provider_name="Fixed")

        assert engine.push(provider_name="Fixed") == []

    def test_units_below_minimum_quality_are_sent_again(self, engine, add_fixed_provider):
        add_fixed_provider(engine, "Weak", quality=30)
        strong = add_fixed_provider(engine, "Strong", quality=90)
        engine.push(provider_name="Weak")

        result = engine.push(provider_name="Strong")

        assert result[0]["num"] == 2
        assert len(strong.requests[0].tus) == 2

    def test_leverage_holds_back_repetitions(self, make_engine, add_fixed_provider):
        engine = make_engine(resources={"a.json": {"greeting": "Hello"}, "b.json": {"welcome": "Hello"}})
        engine.snap()
        fixed = add_fixed_provider(engine)

        engine.push(provider_name="Fixed", leverage=True)
        result = engine.push(provider_name="Repetition")

        assert [tu.rid for tu in fixed.requests[0].tus] == ["a.json"]
        assert result[0]["num"] == 1
        welcome = fr_entry(engine, make_segment_guid("b.json", "welcome", ["Hello"]))
        assert welcome.ntgt == ("HELLO",)
        assert welcome.q == 71
        assert welcome.translation_provider == "Repetition"

    def test_default_provider_is_first_covering_the_pair(self, engine, add_fixed_provider):
        engine.providers[:] = []
        engine.dispatcher.providers[:] = []
        add_fixed_provider(engine, "German", pairs={"en": ["de"]})
        add_fixed_provider(engine, "French", pairs={"en": ["fr"]})

        assert engine.push()[0]["provider"] == "French"

    def test_unknown_provider(self, engine):
        with pytest.raises(ConfigurationError) as exc_info:
            engine.push(provider_name="Nope")
        assert exc_info.value.code == "provider_not_found"

    def test_unknown_language(self, engine):
        with pytest.raises(ConfigurationError) as exc_info:
            engine.push(target_langs=["de"])
        assert exc_info.value.details["languages"] == ["de"]

    def test_dry_run_does_not_create_jobs(self, engine, add_fixed_provider):
        provider = add_fixed_provider(engine)

        result = engine.push(provider_name="Fixed", dry_run=True)

        assert [tu["sid"] for tu in result[0]["tus"]] == ["greeting", "title"]
        assert provider.requests == []
        assert job_statuses(engine) == {}

    def test_minimum_job_size(self, engine, add_fixed_provider):
        provider = add_fixed_provider(engine, minimum_job_size=5)

        result = engine.push(provider_name="Fixed")

        assert result[0]["min_job_size"] == 5
        assert result[0]["num"] == 2
        assert provider.requests == []
        assert job_statuses(engine) == {}

    def test_tu_filter_and_guid_list(self, engine, add_fixed_provider):
        provider = add_fixed_provider(engine)
        title_guid = engine.resource_manager.get_source_tus()
        title_guid = next(guid for guid, tu in title_guid.items() if tu.sid == "title")

        engine.push(provider_name="Fixed", tu_filter=lambda tu: tu.sid == "greeting")
        engine.push(provider_name="Fixed", guid_list=[title_guid])

        assert [[tu.sid for tu in job.tus] for job in provider.requests] == [["greeting"], ["title"]]

    def test_empty_response_cancels_the_job(self, engine, add_empty_provider):
        add_empty_provider(engine)

        result = engine.push(provider_name="Empty")

        assert result[0]["status"] == "cancelled"
        assert result[0]["num"] == 0
        assert job_statuses(engine) == {}

    def test_grandfather_imports_deployed_translations(self, engine):
        target_dir = engine.context.base_dir / "resources" / "fr"
        target_dir.mkdir(parents=True)
        (target_dir / "app.json").write_text(json.dumps({"greeting": "Bonjour"}), encoding="utf-8")

        result = engine.push(provider_name="Grandfather")

        assert result[0]["status"] == "done"
        assert result[0]["num"] == 1
        assert fr_entry(engine, make_segment_guid("app.json", "greeting", ["Hello"])).q == 70


# ============================================================
# Blocked jobs
# ============================================================

class TestBlockedJobs:

    @pytest.fixture
    def blocked(self, engine, add_fixed_provider):
        add_fixed_provider(engine, quota=1)
        return engine.push(provider_name="Fixed")[0]

    def test_job_over_quota_is_blocked(self, engine, blocked):
        assert blocked["status"] == "blocked"
        assert blocked["num"] == 2
        assert job_statuses(engine) == {blocked["job_guid"]: "req"}
        assert engine.tm_manager.get_tm("en", "fr").guids == []

    def test_blocked_job_prevents_new_pushes(self, engine, blocked):
        with pytest.raises(ConsistencyError) as exc_info:
            engine.push(provider_name="Fixed")
        assert exc_info.value.code == "blocked_jobs"

    def test_job_push_ignores_quota(self, engine, blocked):
        result = engine.job_push(blocked["job_guid"])

        assert result == {"job_guid": blocked["job_guid"], "provider": "Fixed", "status": "done", "num": 2}
        assert job_statuses(engine) == {blocked["job_guid"]: "done"}
        assert len(engine.tm_manager.get_tm("en", "fr").guids) == 2

    def test_job_push_rejects_jobs_that_are_not_blocked(self, engine, blocked):
        engine.job_push(blocked["job_guid"])

        with pytest.raises(ConsistencyError) as exc_info:
            engine.job_push(blocked["job_guid"])
        assert exc_info.value.code == "job_not_blocked"

    def test_job_delete(self, engine, blocked):
        engine.job_delete(blocked["job_guid"])

        assert job_statuses(engine) == {}
        assert engine.push(provider_name="Fixed")[0]["status"] == "blocked"

    def test_job_delete_unknown_job(self, engine):
        with pytest.raises(ConsistencyError) as exc_info:
            engine.job_delete("missing")
        assert exc_info.value.code == "job_not_found"


# ============================================================
# Pull
# ============================================================

class TestPull:

    @pytest.fixture
    def bridge_engine(self, make_engine):
        engine = make_engine(resources={"app.json": {f"k{i}": f"Text {i}" for i in range(5)}})
        engine.snap()
        return engine

    @staticmethod
    def outbox(engine, job_guid):
        path = engine.context.base_dir / "bridge" / "outbox" / "fr" / f"{job_guid}.json"
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def write_inbox(engine, job_guid, tus):
        path = engine.context.base_dir / "bridge" / "inbox" / "fr" / f"{job_guid}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        translations = {tu["guid"]: tu["src"].replace("Text", "Texte") for tu in tus}
        path.write_text(json.dumps({"translations": translations}), encoding="utf-8")

    def test_push_to_bridge_leaves_units_in_flight(self, bridge_engine):
        result = bridge_engine.push(provider_name="Bridge")

        assert result[0]["status"] == "pending"
        assert result[0]["num"] == 5
        assert len(self.outbox(bridge_engine, "xxx0xxx")["tus"]) == 5
        tm = bridge_engine.tm_manager.get_tm("en", "fr")
        assert all(entry.inflight and entry.q == 0 for entry in tm.get_all_entries())
        # In-flight units are not pushed again
        assert bridge_engine.push(provider_name="Bridge") == []

    def test_pull_without_answer(self, bridge_engine):
        bridge_engine.push(provider_name="Bridge")

        stats = bridge_engine.pull()

        assert stats == {"num_pending_jobs": 1, "translated_strings": 0, "done_jobs": 0, "new_pending_jobs": 0}

    def test_pull_complete_job(self, bridge_engine):
        bridge_engine.push(provider_name="Bridge")
        self.write_inbox(bridge_engine, "xxx0xxx", self.outbox(bridge_engine, "xxx0xxx")["tus"])

        stats = bridge_engine.pull()

        assert stats["done_jobs"] == 1
        assert stats["translated_strings"] == 5
        assert job_statuses(bridge_engine) == {"xxx0xxx": "done"}
        entries = bridge_engine.tm_manager.get_tm("en", "fr").get_all_entries()
        assert sorted(e.ntgt[0] for e in entries) == [f"Texte {i}" for i in range(5)]
        assert {e.q for e in entries} == {60}

    def test_partial_pull_splits_the_job(self, bridge_engine):
        bridge_engine.push(provider_name="Bridge")
        tus = self.outbox(bridge_engine, "xxx0xxx")["tus"]
        self.write_inbox(bridge_engine, "xxx0xxx", tus[:3])

        # Without partial, translations wait for the whole job
        assert bridge_engine.pull()["translated_strings"] == 0

        stats = bridge_engine.pull(partial=True)

        assert stats == {"num_pending_jobs": 1, "translated_strings": 3, "done_jobs": 0, "new_pending_jobs": 1}
        assert job_statuses(bridge_engine) == {"xxx0xxx": "done", "xxx1xxx": "pending"}
        done = bridge_engine.tm_manager.get_job("xxx0xxx")
        assert done.status == JobStatus.DONE
        assert sorted(tu.guid for tu in done.tus) == sorted(tu["guid"] for tu in tus[:3])
        split = bridge_engine.tm_manager.get_job("xxx1xxx")
        assert split.status == JobStatus.PENDING
        assert sorted(split.inflight) == sorted(tu["guid"] for tu in tus[3:])
        assert split.original_job_guid == "xxx0xxx"
        assert split.job_props["bridge_job_guid"] == "xxx0xxx"
        tm = bridge_engine.tm_manager.get_tm("en", "fr")
        assert all(tm.get_entry_by_guid(tu["guid"]).job_guid == "xxx1xxx" for tu in tus[3:])

    def test_split_job_keeps_reading_the_original_inbox(self, bridge_engine):
        bridge_engine.push(provider_name="Bridge")
        tus = self.outbox(bridge_engine, "xxx0xxx")["tus"]
        self.write_inbox(bridge_engine, "xxx0xxx", tus[:3])
        bridge_engine.pull(partial=True)

        # Nothing new yet for the leftover units
        assert bridge_engine.pull()["translated_strings"] == 0

        # The external process only knows about the job it was sent
        self.write_inbox(bridge_engine, "xxx0xxx", tus)
        stats = bridge_engine.pull()

        assert stats == {"num_pending_jobs": 1, "translated_strings": 2, "done_jobs": 1, "new_pending_jobs": 0}
        assert job_statuses(bridge_engine) == {"xxx0xxx": "done", "xxx1xxx": "done"}
        outbox_dir = bridge_engine.context.base_dir / "bridge" / "outbox" / "fr"
        assert [p.name for p in outbox_dir.iterdir()] == ["xxx0xxx.json"]
        tm = bridge_engine.tm_manager.get_tm("en", "fr")
        assert not any(entry.inflight for entry in tm.get_all_entries())
        assert sorted(e.ntgt[0] for e in tm.get_all_entries()) == [f"Texte {i}" for i in range(5)]


# ============================================================
# Status and generation
# ============================================================

class TestStatus:

    def test_estimate_before_any_job(self, engine):
        lang_status = engine.status()["lang_pairs"]["fr"]

        assert lang_status["jobs"] == {}
        assert lang_status["tm_size"] == 0
        estimate = lang_status["estimate"]
        assert estimate["num_sources"] == 1
        assert estimate["minimum_quality"] == 50
        assert estimate["prj_leverage"]["default"]["untranslated"] == 2
        assert estimate["prj_leverage"]["default"]["untranslated_words"] == 2

    def test_status_after_push(self, engine, add_fixed_provider):
        add_fixed_provider(engine)
        engine.push(provider_name="Fixed")

        status = engine.status()

        assert status["source_lang"] == "en"
        lang_status = status["lang_pairs"]["fr"]
        assert lang_status["jobs"] == {"done": 1}
        assert lang_status["tm_size"] == 2
        assert lang_status["quality"] == {80: 2}
        assert lang_status["estimate"]["prj_leverage"]["default"]["translated_by_q"] == {80: 2}

    def test_generate_translated_resources(self, engine, add_fixed_provider):
        add_fixed_provider(engine)
        engine.push(provider_name="Fixed", tu_filter=lambda tu: tu.sid == "greeting")

        stats = engine.generate()

        assert stats == {"fr": {"resources": 1, "translated": 1, "missing": 1}}
        generated = engine.context.base_dir / "resources" / "fr" / "app.json"
        assert json.loads(generated.read_text(encoding="utf-8")) == {"greeting": "HELLO"}

    def test_analyze_reports_completeness(self, engine, add_fixed_provider):
        add_fixed_provider(engine)
        engine.push(provider_name="Fixed", tu_filter=lambda tu: tu.sid == "greeting")

        report = engine.analyze("fr")

        assert report["issues"] == []
        assert report["stats"]["translated_count"] == 1
        assert report["stats"]["missing_count"] == 1
        assert report["stats"]["is_complete"] is False
