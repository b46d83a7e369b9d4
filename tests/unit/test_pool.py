import threading

import pytest

from evpn_p4.errors import PoolExhausted
from evpn_p4.pool import IDPool, ResourcePools


def test_pool_hands_out_lowest_free_id():
    pool = IDPool("test", 1, 10)

    assert [pool.get_id(key) for key in ("a", "b", "c")] == [1, 2, 3]

    assert pool.release_id("b") == 2
    assert pool.get_id("d") == 2
    assert pool.get_id("e") == 4


def test_same_key_is_reference_counted():
    pool = IDPool("test", 5, 10)

    first = pool.get_id("nh")
    second = pool.get_id("nh")

    assert first == second == 5
    assert pool.refcount("nh") == 2

    pool.release_id("nh")
    assert "nh" in pool
    pool.release_id("nh")
    assert "nh" not in pool
    assert pool.lookup("nh") is None


def test_subkeys_count_distinct_references():
    pool = IDPool("trie", 1, 10)

    assert pool.get_id_with_ref(1001, "10.0.0.0/24") == (1, 1)
    assert pool.get_id_with_ref(1001, "10.0.0.0/24") == (1, 1)
    assert pool.get_id_with_ref(1001, "10.1.0.0/24") == (1, 2)

    assert pool.release_id_with_ref(1001, "10.0.0.0/24") == (1, 1)
    assert pool.release_id_with_ref(1001, "10.1.0.0/24") == (1, 0)
    assert len(pool) == 0


def test_release_of_unknown_key_is_harmless():
    pool = IDPool("test", 1, 10)

    assert pool.release_id("missing") is None
    assert pool.release_id_with_ref("missing", "sub") == (None, 0)
    assert pool.refcount("missing") == 0


def test_pool_exhaustion_raises():
    pool = IDPool("tiny", 1, 3)
    pool.get_id("a")
    pool.get_id("b")

    with pytest.raises(PoolExhausted):
        pool.get_id("c")

    # an existing key still resolves
    assert pool.get_id("a") == 1


def test_pool_rejects_empty_range():
    with pytest.raises(ValueError):
        IDPool("broken", 4, 4)


def test_resource_pools_use_pipeline_ranges():
    pools = ResourcePools()

    assert pools.mod_ptr.get_id("bp") == 2
    assert pools.trie_index.get_id("root") == 1
    assert pools.ecmp.get_id("group") == 1


def test_pool_allocations_are_unique_across_threads():
    pool = IDPool("threads", 1, 1000)
    results = []
    lock = threading.Lock()

    def worker(prefix: str) -> None:
        ids = [pool.get_id(f"{prefix}-{i}") for i in range(50)]
        with lock:
            results.extend(ids)

    threads = [threading.Thread(target=worker, args=(f"t{n}",)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 400
    assert len(set(results)) == 400
