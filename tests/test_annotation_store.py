"""Tests for persisting drain state on the node."""

import asyncio
import json
import logging

import pytest

from drain_controller.models import ANNOTATION_KEY, NodeAnnotation
from drain_controller.services import DrainStateStore
from drain_controller.services.kube_client import MERGE_PATCH

from conftest import api_error
from kube_objects import NODE, controller_entry, make_node

NODE_PATH = f"/api/v1/nodes/{NODE}"


def test_load_without_annotation_is_empty(kube):
    store = DrainStateStore(kube)
    assert store.load(make_node()).controllers == []


def test_load_empty_string_is_empty(kube):
    store = DrainStateStore(kube)
    assert store.load(make_node(raw_annotation="")).controllers == []


def test_load_malformed_annotation_starts_over(kube, caplog):
    store = DrainStateStore(kube)

    with caplog.at_level(logging.ERROR):
        annotation = store.load(make_node(raw_annotation="{not json"))

    assert annotation.controllers == []
    assert "Invalid JSON" in caplog.text


def test_load_round_trips_persisted_entries(kube):
    store = DrainStateStore(kube)
    node = make_node(controllers=[
        controller_entry("customer-service", "my-project", desired=2, current=2, pods=["p"], ready_time=42)
    ])

    annotation = store.load(node)

    assert annotation.controllers[0].ready_time == 42
    assert json.loads(annotation.to_json())["controllers"][0]["readyTime"] == 42


@pytest.mark.asyncio
async def test_save_merge_patches_only_the_drain_key(kube):
    kube.respond("PATCH", NODE_PATH, {})
    store = DrainStateStore(kube)
    annotation = NodeAnnotation.model_validate(
        {"controllers": [controller_entry("customer-service", "my-project", pods=["p"])]}
    )

    assert await store.save(make_node(), annotation) is True

    [call] = kube.calls("PATCH", NODE_PATH)
    assert call.content_type == MERGE_PATCH
    assert list(call.body["metadata"]["annotations"]) == [ANNOTATION_KEY]
    assert set(call.body) == {"metadata"}
    assert kube.last_annotation(NODE)["controllers"][0]["name"] == "customer-service"


@pytest.mark.asyncio
async def test_save_retries_transient_failures(kube):
    kube.respond("PATCH", NODE_PATH, api_error(409, "Conflict"), api_error(500), {})
    store = DrainStateStore(kube)

    assert await store.save(make_node(), NodeAnnotation()) is True
    assert len(kube.calls("PATCH", NODE_PATH)) == 3


@pytest.mark.asyncio
async def test_save_gives_up_after_all_attempts(kube, caplog):
    kube.respond("PATCH", NODE_PATH, api_error(500))
    store = DrainStateStore(kube, save_attempts=10)

    with caplog.at_level(logging.ERROR):
        saved = await store.save(make_node(), NodeAnnotation())

    assert saved is False
    assert len(kube.calls("PATCH", NODE_PATH)) == 10
    assert "attempt 10/10" in caplog.text


@pytest.mark.asyncio
async def test_overlapping_saves_land_in_order(kube):
    kube.respond("PATCH", NODE_PATH, {})
    kube.latency = 0.01
    store = DrainStateStore(kube)
    node = make_node()
    annotation = NodeAnnotation.model_validate(
        {"controllers": [controller_entry("customer-service", "my-project", pods=["p"])]}
    )

    first = asyncio.create_task(store.save(node, annotation))
    await asyncio.sleep(0)
    annotation.controllers[0].desired = 2
    second = asyncio.create_task(store.save(node, annotation))
    assert await asyncio.gather(first, second) == [True, True]

    assert kube.max_in_flight == 1
    assert [state["controllers"][0]["desired"] for state in kube.annotations(NODE)] == [1, 2]
