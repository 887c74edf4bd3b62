from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import FakeComputeClient, RecordingConsole

from skylaunch.addresses import ElasticAddressWorkflow
from skylaunch.constants import ELASTIC_IP_KEY, Lifecycle
from skylaunch.exceptions import AddressNotFound, ProviderError
from skylaunch.storage import MemoryObjectStore
from skylaunch.types import ElasticAddress, ElasticAddressRecord, InstanceHandle

pytestmark = [pytest.mark.xdist_group("unit")]

VPC_ADDRESS = ElasticAddress(public_ip="198.51.100.7", allocation_id="eipalloc-7")
STANDARD_ADDRESS = ElasticAddress(public_ip="198.51.100.8")


def _handle() -> InstanceHandle:
    return InstanceHandle(id="i-0001", state=Lifecycle.RUNNING)


def _workflow(client, rollback=None, metadata=None):
    return ElasticAddressWorkflow(
        client, metadata or MemoryObjectStore(), rollback or MagicMock(), RecordingConsole(),
    )


def _stored(metadata: MemoryObjectStore) -> ElasticAddressRecord:
    return ElasticAddressRecord.from_json(metadata.get(ELASTIC_IP_KEY))


class TestAssociateExisting:
    def test_associates_by_allocation_id(self):
        client = FakeComputeClient(addresses={"198.51.100.7": VPC_ADDRESS})
        metadata = MemoryObjectStore()

        record = _workflow(client, metadata=metadata).associate_existing(_handle(), "198.51.100.7")

        assert client.associated == [("i-0001", "eipalloc-7", None)]
        assert record.allocation_id == "eipalloc-7"
        assert record.association_id is not None
        assert record.allocated is False
        assert _stored(metadata) == record

    def test_standard_address_associates_by_ip(self):
        client = FakeComputeClient(addresses={"198.51.100.8": STANDARD_ADDRESS})
        record = _workflow(client).associate_existing(_handle(), "198.51.100.8")
        assert client.associated == [("i-0001", None, "198.51.100.8")]
        assert record.association_id is None

    def test_unknown_address_rolls_back(self):
        client = FakeComputeClient()
        rollback = MagicMock()
        metadata = MemoryObjectStore()

        with pytest.raises(AddressNotFound, match="Elastic IP not found: 198.51.100.9"):
            _workflow(client, rollback, metadata).associate_existing(_handle(), "198.51.100.9")

        rollback.assert_called_once_with()
        assert client.associated == []
        assert not metadata.exists(ELASTIC_IP_KEY)

    def test_association_rejected_rolls_back(self):
        client = FakeComputeClient(
            addresses={"198.51.100.7": VPC_ADDRESS},
            associate_error=ProviderError("Resource.AlreadyAssociated"),
        )
        rollback = MagicMock()

        with pytest.raises(ProviderError, match="AlreadyAssociated"):
            _workflow(client, rollback).associate_existing(_handle(), "198.51.100.7")

        rollback.assert_called_once_with()


class TestAllocateAndAssociate:
    def test_allocates_then_associates(self):
        client = FakeComputeClient()
        metadata = MemoryObjectStore()

        record = _workflow(client, metadata=metadata).allocate_and_associate(_handle(), "vpc")

        assert record.allocated is True
        assert record.allocation_id == "eipalloc-0001"
        assert client.associated[0][:2] == ("i-0001", "eipalloc-0001")
        assert client.described == ["203.0.113.1"]
        assert _stored(metadata) == record

    def test_allocation_failure_rolls_back_and_propagates(self):
        client = FakeComputeClient(allocate_error=ProviderError("AddressLimitExceeded"))
        rollback = MagicMock()

        with pytest.raises(ProviderError, match="AddressLimitExceeded"):
            _workflow(client, rollback).allocate_and_associate(_handle(), "vpc")

        rollback.assert_called_once_with()

    def test_allocated_address_not_found(self):
        client = FakeComputeClient(associate_error=AddressNotFound("eipalloc-0001"))
        rollback = MagicMock()
        metadata = MemoryObjectStore()

        with pytest.raises(
            AddressNotFound, match="not allocated with allocate_elastic_ip option: vpc",
        ):
            _workflow(client, rollback, metadata).allocate_and_associate(_handle(), "vpc")

        rollback.assert_called_once_with()

    def test_allocation_is_recorded_before_association(self):
        client = FakeComputeClient(associate_error=ProviderError("boom"))
        metadata = MemoryObjectStore()
        seen: list[ElasticAddressRecord] = []

        def rollback() -> None:
            seen.append(_stored(metadata))

        with pytest.raises(ProviderError):
            _workflow(client, rollback, metadata).allocate_and_associate(_handle(), "vpc")

        assert seen == [ElasticAddressRecord(
            public_ip="203.0.113.1", allocation_id="eipalloc-0001", allocated=True,
        )]
