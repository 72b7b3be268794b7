"""Tests for TreeChangeSource: asynchronous batched delivery."""

from __future__ import annotations

import pytest

from nodewatch.host import ManualHost
from nodewatch.models import ChangeKind
from nodewatch.protocols import ChangeSource
from nodewatch.tree import Document, TreeChangeSource


@pytest.fixture
def doc():
    return Document()


@pytest.fixture
def batches():
    return []


@pytest.fixture
def source(host: ManualHost, doc, batches):
    src = TreeChangeSource(host)
    src.observe(doc.root, batches.append)
    return src


class TestDelivery:
    def test_satisfies_change_source_protocol(self, host):
        assert isinstance(TreeChangeSource(host), ChangeSource)

    def test_delivery_is_never_synchronous(self, host, doc, source, batches):
        doc.root.append(doc.create_element("div"))
        assert batches == []
        host.run_until_idle()
        assert len(batches) == 1

    def test_mutations_in_one_turn_share_a_batch(self, host, doc, source, batches):
        a = doc.root.append(doc.create_element("div"))
        a.set_attribute("class", "x")
        a.set_text("hello")
        host.run_until_idle()
        (batch,) = batches
        assert [e.kind for e in batch] == [ChangeKind.INSERT, ChangeKind.ATTRIBUTE, ChangeKind.TEXT]

    def test_only_covered_subtree_is_reported(self, host, doc, batches):
        watched = doc.root.append(doc.create_element("section"))
        other = doc.root.append(doc.create_element("aside"))
        src = TreeChangeSource(host)
        src.observe(watched, batches.append)
        other.append(doc.create_element("p"))
        watched.append(doc.create_element("p"))
        host.run_until_idle()
        (batch,) = batches
        assert batch[0].target is watched

    def test_take_records_drains_and_cancels_delivery(self, host, doc, source, batches):
        doc.root.append(doc.create_element("div"))
        records = source.take_records()
        assert len(records) == 1
        assert host.pending_count() == 0
        host.run_until_idle()
        assert batches == []

    def test_disconnect_drops_undelivered(self, host, doc, source, batches):
        doc.root.append(doc.create_element("div"))
        source.disconnect()
        host.run_until_idle()
        assert batches == []
        assert source.root is None
        doc.root.append(doc.create_element("div"))
        host.run_until_idle()
        assert batches == []

    def test_observe_detached_root_without_owner_raises(self, host):
        from nodewatch.tree import Element

        with pytest.raises(ValueError):
            TreeChangeSource(host).observe(Element("div"), lambda batch: None)


class TestInterception:
    def test_raw_edits_are_ignored_without_intercept(self, host, doc, source, batches):
        doc.root.raw_append(doc.create_element("div"))
        host.run_until_idle()
        assert batches == []

    def test_raw_edits_are_reported_with_intercept(self, host, doc, batches):
        src = TreeChangeSource(host, intercept=True)
        assert src.intercepts
        src.observe(doc.root, batches.append)
        doc.root.raw_append(doc.create_element("div"))
        host.run_until_idle()
        (batch,) = batches
        assert batch[0].kind is ChangeKind.INSERT
