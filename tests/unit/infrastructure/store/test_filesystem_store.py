import os
import pickle
import sys
import threading

import pytest

from xfcache.domain.errors import StorageWriteError
from xfcache.domain.models.entry import MISS, Entry, Hit
from xfcache.infrastructure.store.filesystem_store import FilesystemStore, TMP_SUFFIX


def entry(clock, value="v", ttl=60.0, duration=0.002):
    return Entry(
        value=value,
        created_at=clock(),
        expires_at=None if ttl is None else clock() + ttl,
        compute_duration=duration,
    )


def test_write_then_read(fs_store, clock):
    original = entry(clock, value={"rows": [1, 2, 3]})
    fs_store.write("report", original)
    lookup = fs_store.read("report")
    assert isinstance(lookup, Hit)
    assert lookup.entry == original
    assert fs_store.exists("report")


@pytest.mark.parametrize("value", [None, 0, "", sys.maxsize, -sys.maxsize - 1, 1e308, [None], {"a": (1, 2)}, b"\x00\n\xff"])
def test_values_round_trip(fs_store, clock, value):
    fs_store.write("k", entry(clock, value=value, ttl=None))
    lookup = fs_store.read("k")
    assert lookup is not MISS
    assert lookup.entry.value == value


def test_absent_key_is_miss(fs_store):
    assert fs_store.read("nothing") is MISS
    assert not fs_store.exists("nothing")


def test_expired_record_is_miss_but_stays_on_disk_until_pruned(fs_store, clock):
    fs_store.write("k", entry(clock, ttl=5))
    path = fs_store._path_for("k")
    clock.advance(5)
    assert fs_store.read("k") is MISS
    assert not fs_store.exists("k")
    assert path.exists()
    assert fs_store.prune() == 1
    assert not path.exists()


def test_keys_never_reach_the_file_system(fs_store, clock):
    key = "../../etc/passwd\nline2 ünïcode"
    fs_store.write(key, entry(clock))
    path = fs_store._path_for(key)
    assert path.parent.parent == fs_store.directory
    assert fs_store.read(key).entry.value == "v"
    assert fs_store.exists(key)


def test_replacing_an_entry(fs_store, clock):
    fs_store.write("k", entry(clock, value="old"))
    fs_store.write("k", entry(clock, value="new"))
    assert fs_store.read("k").entry.value == "new"
    assert list(fs_store._path_for("k").parent.iterdir()) == [fs_store._path_for("k")]


@pytest.mark.parametrize("content", [
    b"",
    b"garbage",
    b"never\n1.0\n0.0\n",                    # header only, truncated
    b"soon\n1.0\n0.0\nk\n" + pickle.dumps(1),  # bad expiry
    b"never\n1.0\n0.0\n\n" + pickle.dumps(1),  # missing key
])
def test_corrupt_headers_are_misses_and_pruned(fs_store, clock, content):
    fs_store.write("k", entry(clock))
    fs_store._path_for("k").write_bytes(content)
    assert fs_store.read("k") is MISS
    assert fs_store.prune() == 1
    assert fs_store.read("k") is MISS


def test_pickle_payload_corruption_is_a_miss_for_read_and_exists(fs_store, clock):
    fs_store.write("k", entry(clock))
    path = fs_store._path_for("k")
    data = path.read_bytes()
    header = b"\n".join(data.split(b"\n", 4)[:4]) + b"\n"
    path.write_bytes(header + b"\x80\x05not a pickle")
    assert fs_store.read("k") is MISS
    assert not fs_store.exists("k")

    path.write_bytes(header + b"\x80\x05")  # truncated
    assert fs_store.read("k") is MISS
    assert not fs_store.exists("k")


def test_very_long_key_is_found_by_read_exists_and_prune(fs_store, clock):
    key = "x" * 70_000
    fs_store.write(key, entry(clock))
    assert fs_store.read(key).entry.value == "v"
    assert fs_store.exists(key)
    assert fs_store.prune() == 0
    assert fs_store.exists(key)


def test_record_for_other_key_is_miss(fs_store, clock):
    fs_store.write("a", entry(clock, value="A"))
    os.makedirs(fs_store._path_for("b").parent, exist_ok=True)
    os.replace(fs_store._path_for("a"), fs_store._path_for("b"))
    assert fs_store.read("b") is MISS
    assert not fs_store.exists("b")


def test_interrupted_write_leaves_old_entry(fs_store, clock, mocker):
    fs_store.write("k", entry(clock, value="old"))
    mocker.patch("xfcache.infrastructure.store.filesystem_store.os.replace", side_effect=OSError("crash"))

    with pytest.raises(StorageWriteError):
        fs_store.write("k", entry(clock, value="new"))

    assert fs_store.read("k").entry.value == "old"
    leftovers = [p for p in fs_store._path_for("k").parent.iterdir() if p.name.endswith(TMP_SUFFIX)]
    assert leftovers == []


def test_orphaned_temp_file_is_invisible_and_pruned_after_grace(fs_store, clock):
    path = fs_store._path_for("k")
    path.parent.mkdir(parents=True)
    orphan = path.parent / f".{path.name}.abc{TMP_SUFFIX}"
    orphan.write_bytes(b"never\n1.0\n0.0\nk\n\x80")   # crash mid-write
    assert fs_store.read("k") is MISS
    assert fs_store.prune() == 0  # still within grace period

    clock.advance(fs_store.tmp_grace + os.path.getmtime(orphan) - clock.now + 1)
    assert fs_store.prune() == 1
    assert not orphan.exists()


def test_unpicklable_value_raises_write_error(fs_store, clock):
    with pytest.raises(StorageWriteError):
        fs_store.write("k", entry(clock, value=threading.Lock()))
    assert fs_store.read("k") is MISS


def test_write_error_when_directory_is_unwritable(fs_store, clock, mocker):
    mocker.patch("xfcache.infrastructure.store.filesystem_store.tempfile.mkstemp", side_effect=PermissionError("denied"))
    with pytest.raises(StorageWriteError) as excinfo:
        fs_store.write("k", entry(clock))
    assert excinfo.value.key == "k"
    assert isinstance(excinfo.value.__cause__, PermissionError)


def test_delete_is_idempotent_and_removes_empty_shards(fs_store, clock):
    assert fs_store.delete("missing")
    fs_store.write("k", entry(clock))
    shard = fs_store._path_for("k").parent
    assert fs_store.delete("k")
    assert fs_store.delete("k")
    assert fs_store.read("k") is MISS
    assert not shard.exists()


def test_clear_removes_everything(fs_store, clock):
    for key in ("a", "b", "c"):
        fs_store.write(key, entry(clock))
    assert fs_store.clear()
    assert fs_store.directory.is_dir()
    assert not any(fs_store.exists(k) for k in ("a", "b", "c"))


def test_namespaces_are_isolated(tmp_path, clock):
    one = FilesystemStore(tmp_path, namespace="one", clock=clock)
    two = FilesystemStore(tmp_path, namespace="two", clock=clock)
    one.write("k", entry(clock, value=1))
    assert two.read("k") is MISS
    two.clear()
    assert one.read("k").entry.value == 1


def test_invalid_namespace_rejected(tmp_path):
    with pytest.raises(ValueError):
        FilesystemStore(tmp_path, namespace="../escape")


def test_data_survives_a_new_store_instance(tmp_path, clock):
    FilesystemStore(tmp_path, clock=clock).write("k", entry(clock, value="persisted"))
    assert FilesystemStore(tmp_path, clock=clock).read("k").entry.value == "persisted"


def test_concurrent_writers_and_readers_never_see_torn_records(fs_store, clock):
    big_values = [bytes([i]) * 200_000 for i in range(4)]
    errors = []
    stop = threading.Event()

    def writer(value):
        for _ in range(20):
            fs_store.write("hot", entry(clock, value=value))

    def reader():
        while not stop.is_set():
            lookup = fs_store.read("hot")
            if lookup is not MISS and lookup.entry.value not in big_values:
                errors.append("torn read")

    fs_store.write("hot", entry(clock, value=big_values[0]))
    readers = [threading.Thread(target=reader) for _ in range(3)]
    writers = [threading.Thread(target=writer, args=(v,)) for v in big_values]
    for t in readers + writers:
        t.start()
    for t in writers:
        t.join()
    stop.set()
    for t in readers:
        t.join()

    assert errors == []
    assert fs_store.read("hot").entry.value in big_values
