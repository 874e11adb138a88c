"""Tests for Stage 2: Activity Mapper."""

import json

import pytest

from models.schemas.activity import ActivityMapping, UserTask
from services.pipeline.m2_activity_mapper import ActivityMapperService, overall_confidence
from services.reference_store import InMemoryReferenceStore, ReferenceSnapshot


def _mapping_json(pairs, confidence):
    return json.dumps({
        "mappings": [{"activity_id": a, "relevance": r} for a, r in pairs],
        "confidence": confidence,
    })


def _tasks(*descriptions):
    share = 100 / len(descriptions)
    return [UserTask(description=d, time_share=share) for d in descriptions]


class TestFallback:
    @pytest.mark.asyncio
    async def test_no_client_gives_fallback_for_every_task(self, store):
        svc = ActivityMapperService(store)

        mappings = await svc.map_tasks(_tasks("Enter invoices", "Answer phones"))
        assert len(mappings) == 2
        for m in mappings:
            assert m.fallback is True
            assert m.activities == []
            assert m.mapping_confidence == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_empty_task_list(self, store, fake_client):
        svc = ActivityMapperService(store, fake_client)
        assert await svc.map_tasks([]) == []
        assert fake_client.prompts == []

    @pytest.mark.asyncio
    async def test_empty_candidate_pool(self, snapshot, fake_client):
        bare = InMemoryReferenceStore(ReferenceSnapshot(occupations=snapshot.occupations))
        svc = ActivityMapperService(bare, fake_client)

        mappings = await svc.map_tasks(_tasks("Enter invoices"))
        assert mappings[0].fallback is True
        assert fake_client.prompts == []


class TestSingleTask:
    @pytest.mark.asyncio
    async def test_mapping_is_validated_and_sorted(self, store, client_factory, fast_retry):
        client = client_factory(responses=[
            _mapping_json([("A7", 0.6), ("A4", 0.9), ("A99", 1.0), ("A4", 0.2)], 1.4),
        ])
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)
        nurses = store.get_occupation("29-1141.00")

        [mapping] = await svc.map_tasks(
            [UserTask(description="Give patients their medication", time_share=100)],
            occupation=nurses,
        )
        assert mapping.fallback is False
        assert mapping.activity_ids == ["A4", "A7"]
        assert mapping.activities[0].relevance == pytest.approx(0.9)
        assert mapping.activities[0].title == "Administer medications"
        assert mapping.mapping_confidence == pytest.approx(1.0)

        prompt = client.prompts[0]
        assert "Registered Nurses" in prompt
        assert "A4: Administer medications" in prompt
        assert "A1:" not in prompt  # only the occupation's linked activities

    @pytest.mark.asyncio
    async def test_keeps_at_most_five_activities(self, store, client_factory, fast_retry):
        pairs = [(f"A{i}", i / 10) for i in range(1, 8)]
        client = client_factory(responses=[_mapping_json(pairs, 0.8)])
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)

        [mapping] = await svc.map_tasks(_tasks("Do everything"))
        assert mapping.activity_ids == ["A7", "A6", "A5", "A4", "A3"]

    @pytest.mark.asyncio
    async def test_invalid_response_gives_fallback(self, store, client_factory, fast_retry):
        client = client_factory(responses=['{"mappings": "nope"}'])
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)

        [mapping] = await svc.map_tasks(_tasks("Enter invoices"))
        assert mapping.fallback is True
        assert len(client.prompts) == 1

    @pytest.mark.asyncio
    async def test_only_unknown_activities_gives_fallback(self, store, client_factory, fast_retry):
        client = client_factory(responses=[_mapping_json([("NOPE", 1.0)], 0.95)])
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)

        [mapping] = await svc.map_tasks(_tasks("Enter invoices"))
        assert mapping.activities == []
        assert mapping.fallback is True
        assert mapping.mapping_confidence == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_exhausted_retries_give_fallback(self, store, client_factory, fast_retry):
        client = client_factory(responses=[TimeoutError(), ConnectionError()])
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)

        [mapping] = await svc.map_tasks(_tasks("Enter invoices"))
        assert mapping.fallback is True
        assert len(client.prompts) == fast_retry.max_attempts

    @pytest.mark.asyncio
    async def test_occupation_without_activities_samples_catalogue(self, store, client_factory, fast_retry):
        client = client_factory(responses=[_mapping_json([("A1", 0.9)], 0.9)])
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)
        unscored = store.get_occupation("99-0001.00")

        [mapping] = await svc.map_tasks(_tasks("Type records"), occupation=unscored)
        assert mapping.activity_ids == ["A1"]
        assert "A5: Write computer programs" in client.prompts[0]


class TestBatching:
    @pytest.mark.asyncio
    async def test_small_task_sets_use_one_request(self, store, client_factory, fast_retry):
        payload = {
            "task_mappings": [
                {"task_index": 1, "mappings": [{"activity_id": "A1", "relevance": 0.9}], "confidence": 0.9},
                {"task_index": 3, "mappings": [{"activity_id": "A6", "relevance": 0.8}], "confidence": 0.7},
                {"task_index": 1, "mappings": [{"activity_id": "A2", "relevance": 0.9}], "confidence": 0.1},
                {"task_index": 7, "mappings": [{"activity_id": "A3", "relevance": 0.9}], "confidence": 0.9},
            ]
        }
        client = client_factory(responses=[json.dumps(payload)])
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)

        mappings = await svc.map_tasks(_tasks("Key in data", "Plan the week", "Mentor new hires"))
        assert len(client.prompts) == 1
        assert "task_mappings" in client.prompts[0]

        first, second, third = mappings
        assert first.activity_ids == ["A1"]  # first entry for an index wins
        assert first.mapping_confidence == pytest.approx(0.9)
        assert second.fallback is True  # omitted from the response
        assert third.activity_ids == ["A6"]

    @pytest.mark.asyncio
    async def test_batch_failure_falls_back_for_all(self, store, client_factory, fast_retry):
        client = client_factory(responses=["```json\n{not json}\n```"])
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)

        mappings = await svc.map_tasks(_tasks("Key in data", "Plan the week"))
        assert [m.fallback for m in mappings] == [True, True]

    @pytest.mark.asyncio
    async def test_batch_truncates_candidate_list(self, store, client_factory, fast_retry):
        payload = {"task_mappings": [
            {"task_index": 1, "mappings": [{"activity_id": "A3", "relevance": 0.9}], "confidence": 0.9},
            {"task_index": 2, "mappings": [{"activity_id": "A1", "relevance": 0.9}], "confidence": 0.9},
        ]}
        client = client_factory(responses=[json.dumps(payload)])
        svc = ActivityMapperService(store, client, batch_activity_limit=2, retry_policy=fast_retry)

        mappings = await svc.map_tasks(_tasks("Key in data", "Check records"))
        # A3 was not shown to the model, so nothing valid is left for task 1
        assert mappings[0].activity_ids == []
        assert mappings[0].fallback is True
        assert mappings[0].mapping_confidence == pytest.approx(0.3)
        assert mappings[1].activity_ids == ["A1"]

    @pytest.mark.asyncio
    async def test_large_task_sets_map_each_task(self, store, client_factory, fast_retry):
        client = client_factory(responder=lambda prompt: _mapping_json([("A1", 0.5)], 0.8))
        svc = ActivityMapperService(store, client, retry_policy=fast_retry)

        tasks = _tasks(*[f"Task number {i}" for i in range(11)])
        mappings = await svc.map_tasks(tasks)
        assert len(client.prompts) == 11
        assert [m.description for m in mappings] == [t.description for t in tasks]
        assert all(m.activity_ids == ["A1"] for m in mappings)

    @pytest.mark.asyncio
    async def test_per_task_requests_are_bounded(self, store, client_factory, fast_retry):
        client = client_factory(
            responder=lambda prompt: _mapping_json([("A1", 0.5)], 0.8), delay=0.01
        )
        svc = ActivityMapperService(store, client, max_concurrency=3, retry_policy=fast_retry)

        mappings = await svc.map_tasks(_tasks(*[f"Task number {i}" for i in range(12)]))
        assert len(mappings) == 12
        assert not any(m.fallback for m in mappings)
        assert client.max_in_flight == 3


class TestCandidatePool:
    def test_catalogue_sample_is_bounded_and_ranked(self, store):
        svc = ActivityMapperService(store, catalogue_sample_size=2)
        svc.ensure_loaded()

        pool = svc.candidate_pool(_tasks("Enter data into information systems"))
        assert [a.activity_id for a in pool] == ["A1", "A2"]

    def test_occupation_pool_uses_linked_activities(self, store):
        svc = ActivityMapperService(store)
        svc.ensure_loaded()

        pool = svc.candidate_pool(_tasks("anything"), store.get_occupation("43-9021.00"))
        assert [a.activity_id for a in pool] == ["A1", "A2", "A7"]


def test_overall_confidence_is_time_weighted():
    mappings = [
        ActivityMapping(description="a", time_share=75, mapping_confidence=0.8),
        ActivityMapping(description="b", time_share=25, mapping_confidence=0.4),
    ]
    assert overall_confidence(mappings) == pytest.approx(0.7)
    assert overall_confidence([ActivityMapping(description="c", time_share=0)]) == 0.0
