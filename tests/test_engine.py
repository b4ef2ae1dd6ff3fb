#!/usr/bin/env python3
"""
Test suite for the FileCopier engine.

Tests cover:
- Single and multi-destination copying, buffered and zero-copy
- Empty files and directory recreation
- Checking copies, digest cache use and corruption detection
- Destination conflicts and configuration errors
- Failure isolation between files
- Progress events
"""

import asyncio
import os
import re
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
import xxhash

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from multicopy import (
    CacheEvictor,
    CopierConfig,
    CopierState,
    CopyConfigurationError,
    CopyJob,
    DestinationConflictError,
    DigestMismatchError,
    EventType,
    FileCopier,
    FileState,
    HashCalculator,
    NoopCacheEvictor,
    Source,
    TransferError,
)


class RecordingEvictor(CacheEvictor):
    """Remembers every evicted path."""

    def __init__(self):
        self.evicted = []

    def evict(self, path: Path) -> bool:
        self.evicted.append(path)
        return True

    def get_platform_name(self) -> str:
        return "test"


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def copy_test_env():
    """Create a source directory and two empty destination directories."""
    test_dir = tempfile.mkdtemp()
    test_path = Path(test_dir)

    source_dir = test_path / "source"
    source_dir.mkdir()
    dest1 = test_path / "dest1"
    dest2 = test_path / "dest2"
    dest1.mkdir()
    dest2.mkdir()

    yield test_path, source_dir, dest1, dest2
    shutil.rmtree(test_dir)


@pytest.fixture
def copier():
    """Engine with a small first slice and no cache eviction."""
    engine = FileCopier(
        config=CopierConfig(initial_slice=64 * 1024), evictor=NoopCacheEvictor()
    )
    yield engine
    engine.close()


def single_file_job(source_file: Path, *destinations: Path) -> CopyJob:
    return CopyJob(
        sources=[Source(source_file.parent, re.escape(source_file.name))],
        destinations=list(destinations),
    )


# ============================================================================
# Copying
# ============================================================================


@pytest.mark.parametrize("direct_transfer", [True, False])
def test_multi_destination_copy(copy_test_env, direct_transfer) -> None:
    """Every destination gets a byte-identical copy, counted once."""
    test_path, source_dir, dest1, dest2 = copy_test_env
    dest3 = test_path / "dest3"
    dest3.mkdir()
    test_data = os.urandom(3 * 1024 * 1024 + 123)
    source_file = source_dir / "clip.mov"
    source_file.write_bytes(test_data)

    config = CopierConfig(initial_slice=256 * 1024, direct_transfer=direct_transfer)
    with FileCopier(config=config, evictor=NoopCacheEvictor()) as engine:
        counters = []
        engine.add_listener(EventType.BYTE_COUNTER, lambda e: counters.append(e.new_value))
        engine.copy(single_file_job(source_file, dest1, dest2, dest3))

        for dest in [dest1, dest2, dest3]:
            assert (dest / "clip.mov").read_bytes() == test_data

        assert engine.byte_count == len(test_data)
        assert engine.copied_bytes == len(test_data)
        assert counters == sorted(counters)
        assert counters[-1] == len(test_data)


def test_single_slice_file_reports_once(copy_test_env, copier) -> None:
    """A file smaller than the slice goes through exactly one rendezvous."""
    _, source_dir, dest1, dest2 = copy_test_env
    source_file = source_dir / "small.txt"
    source_file.write_bytes(b"small file")
    counters = []
    copier.add_listener(EventType.BYTE_COUNTER, lambda e: counters.append(e.new_value))

    copier.copy(single_file_job(source_file, dest1, dest2))

    assert counters == [len(b"small file")]


def test_directory_copy_preserves_structure(copy_test_env, copier) -> None:
    """Recursive sources recreate subdirectories, including empty ones."""
    _, source_dir, dest1, dest2 = copy_test_env
    (source_dir / "file1.txt").write_text("content1")
    (source_dir / "subdir").mkdir()
    (source_dir / "subdir" / "file2.txt").write_text("content2")
    (source_dir / "empty").mkdir()

    job = CopyJob(sources=[Source(source_dir, ".*", recursive=True)], destinations=[dest1, dest2])
    copier.copy(job)

    for dest in [dest1, dest2]:
        assert (dest / "file1.txt").read_text() == "content1"
        assert (dest / "subdir" / "file2.txt").read_text() == "content2"
        assert (dest / "empty").is_dir()


def test_missing_parent_directories_are_created(copy_test_env, copier) -> None:
    """Matched files in unmatched subdirectories still get their parents."""
    _, source_dir, dest1, _ = copy_test_env
    (source_dir / "a" / "b").mkdir(parents=True)
    (source_dir / "a" / "b" / "deep.txt").write_text("deep")

    job = CopyJob(sources=[Source(source_dir, r".*\.txt", recursive=True)], destinations=[dest1])
    copier.copy(job)

    assert (dest1 / "a" / "b" / "deep.txt").read_text() == "deep"


def test_empty_file_creates_empty_copies(copy_test_env, copier) -> None:
    """Empty sources give empty destinations and no digest."""
    _, source_dir, dest1, dest2 = copy_test_env
    source_file = source_dir / "empty.bin"
    source_file.touch()
    cache = {}
    copier.digest_cache = cache

    with patch("multicopy.engine.HashCalculator", wraps=HashCalculator) as calc:
        copier.copy(single_file_job(source_file, dest1, dest2), check_copies=True)

    for dest in [dest1, dest2]:
        assert (dest / "empty.bin").is_file()
        assert (dest / "empty.bin").stat().st_size == 0
    assert calc.call_count == 0
    assert cache == {}


def test_no_matching_files(copy_test_env, copier) -> None:
    """Nothing to copy ends the invocation without error."""
    _, source_dir, dest1, _ = copy_test_env
    states = []
    copier.add_listener(EventType.STATE, lambda e: states.append(e.new_value))

    copier.copy(CopyJob(sources=[Source(source_dir, ".*")], destinations=[dest1]))

    assert states == [CopierState.CHECKING_SOURCE, CopierState.END]
    assert list(dest1.iterdir()) == []


# ============================================================================
# Checking copies
# ============================================================================


def test_check_copies_evicts_and_verifies(copy_test_env) -> None:
    """Every destination is evicted and verified after the copy."""
    _, source_dir, dest1, dest2 = copy_test_env
    source_file = source_dir / "data.bin"
    source_file.write_bytes(os.urandom(200 * 1024))
    evictor = RecordingEvictor()

    with FileCopier(evictor=evictor) as engine:
        files = []
        engine.add_listener(EventType.FILE, lambda e: files.append(e.new_value))
        engine.copy(single_file_job(source_file, dest1, dest2), check_copies=True)

        assert sorted(evictor.evicted) == sorted([dest1 / "data.bin", dest2 / "data.bin"])
        assert engine.currently_processed_file.state == FileState.CHECKING
        assert engine.currently_processed_file.name == str(source_file.absolute())
        # scan, copy, check
        assert files == [source_dir, source_file.absolute(), source_file.absolute()]


def test_digest_cache_computes_source_digest_once(copy_test_env) -> None:
    """A second copy of the same source takes the digest from the cache."""
    _, source_dir, dest1, dest2 = copy_test_env
    test_data = os.urandom(500 * 1024)
    source_file = source_dir / "data.bin"
    source_file.write_bytes(test_data)
    cache = {}

    with FileCopier(digest_cache=cache, evictor=NoopCacheEvictor()) as engine:
        with patch("multicopy.engine.HashCalculator", wraps=HashCalculator) as calc:
            engine.copy(single_file_job(source_file, dest1), check_copies=True)
            engine.reset()
            engine.copy(single_file_job(source_file, dest2), check_copies=True)

    assert calc.call_count == 1
    assert cache == {str(source_file.absolute()): xxhash.xxh3_128(test_data).digest()}
    assert (dest2 / "data.bin").read_bytes() == test_data


def test_corrupt_copy_is_reported(copy_test_env) -> None:
    """A digest mismatch is raised after the copy, naming both digests."""
    _, source_dir, dest1, dest2 = copy_test_env
    test_data = b"payload" * 1000
    source_file = source_dir / "data.bin"
    source_file.write_bytes(test_data)
    # a stale cache entry makes every copy look corrupt
    wrong = bytes(16)
    cache = {str(source_file.absolute()): wrong}

    with FileCopier(digest_cache=cache, evictor=NoopCacheEvictor()) as engine:
        with pytest.raises(DigestMismatchError) as excinfo:
            engine.copy(single_file_job(source_file, dest1, dest2), check_copies=True)

        assert engine.phase == CopierState.END

    assert excinfo.value.expected == wrong
    assert excinfo.value.actual == xxhash.xxh3_128(test_data).digest()
    assert excinfo.value.path in (dest1 / "data.bin", dest2 / "data.bin")
    # the copies themselves were written
    assert (dest1 / "data.bin").read_bytes() == test_data
    assert (dest2 / "data.bin").read_bytes() == test_data


def test_md5_check(copy_test_env) -> None:
    """MD5 works as the configured digest."""
    _, source_dir, dest1, _ = copy_test_env
    source_file = source_dir / "data.bin"
    source_file.write_bytes(b"md5 data" * 500)
    cache = {}

    config = CopierConfig(hash_algorithm="MD5")
    with FileCopier(digest_cache=cache, config=config, evictor=NoopCacheEvictor()) as engine:
        engine.copy(single_file_job(source_file, dest1), check_copies=True)

    assert len(cache[str(source_file.absolute())]) == 16


# ============================================================================
# Sanity checks
# ============================================================================


def test_several_files_onto_existing_file_fails(copy_test_env, copier) -> None:
    """Copying two files onto one existing file fails before any write."""
    test_path, source_dir, _, _ = copy_test_env
    (source_dir / "one.txt").write_text("one")
    (source_dir / "two.txt").write_text("two")
    target = test_path / "target.txt"
    target.write_text("original")

    job = CopyJob(sources=[Source(source_dir, r".*\.txt")], destinations=[target])
    with pytest.raises(DestinationConflictError):
        copier.copy(job)

    assert target.read_text() == "original"
    assert copier.copied_bytes == 0


def test_single_file_onto_existing_file_overwrites(copy_test_env, copier) -> None:
    """Exactly one source file may replace an existing file."""
    test_path, source_dir, _, _ = copy_test_env
    source_file = source_dir / "one.txt"
    source_file.write_text("new content")
    target = test_path / "target.txt"
    target.write_text("original, longer content")

    copier.copy(single_file_job(source_file, target))

    assert target.read_text() == "new content"


def test_directory_onto_existing_file_fails(copy_test_env, copier) -> None:
    """A directory can not replace a file."""
    test_path, source_dir, _, _ = copy_test_env
    (source_dir / "sub").mkdir()
    target = test_path / "target.txt"
    target.write_text("original")

    job = CopyJob(sources=[Source(source_dir, "sub", recursive=True)], destinations=[target])
    with pytest.raises(DestinationConflictError):
        copier.copy(job)


def test_directory_onto_existing_file_below_root_fails(copy_test_env, copier) -> None:
    """A file in the way of a directory is found before copying."""
    _, source_dir, dest1, _ = copy_test_env
    (source_dir / "sub").mkdir()
    (source_dir / "sub" / "inner.txt").write_text("inner")
    (dest1 / "sub").write_text("in the way")

    job = CopyJob(sources=[Source(source_dir, ".*", recursive=True)], destinations=[dest1])
    with pytest.raises(DestinationConflictError):
        copier.copy(job)

    assert (dest1 / "sub").read_text() == "in the way"


def test_missing_pattern_fails(copy_test_env, copier) -> None:
    """A source without pattern is a caller error."""
    _, source_dir, dest1, _ = copy_test_env
    (source_dir / "file.txt").write_text("x")

    with pytest.raises(ValueError):
        copier.copy(CopyJob(sources=[Source(source_dir, None)], destinations=[dest1]))


def test_too_many_destinations_fails(copy_test_env) -> None:
    """Every destination of a file needs its own worker."""
    _, source_dir, dest1, dest2 = copy_test_env
    source_file = source_dir / "file.txt"
    source_file.write_text("x")

    with FileCopier(config=CopierConfig(max_workers=1)) as engine:
        with pytest.raises(CopyConfigurationError):
            engine.copy(single_file_job(source_file, dest1, dest2))


def test_invalid_algorithm_rejected() -> None:
    """Unavailable digests are rejected up front."""
    with pytest.raises(ValueError):
        FileCopier(config=CopierConfig(hash_algorithm="crc32"))


# ============================================================================
# Failures
# ============================================================================


def test_failed_file_does_not_stop_others(copy_test_env, copier) -> None:
    """A transfer error is raised only after the remaining files are copied."""
    _, source_dir, dest1, dest2 = copy_test_env
    (source_dir / "bad.bin").write_bytes(b"bad" * 1000)
    (source_dir / "good.bin").write_bytes(b"good" * 1000)
    # a directory where the copy of bad.bin should go
    (dest1 / "bad.bin").mkdir()

    job = CopyJob(sources=[Source(source_dir, r".*\.bin")], destinations=[dest1, dest2])
    with pytest.raises(TransferError) as excinfo:
        copier.copy(job)

    assert excinfo.value.source == source_dir / "bad.bin"
    assert isinstance(excinfo.value.cause, OSError)
    for dest in [dest1, dest2]:
        assert (dest / "good.bin").read_bytes() == b"good" * 1000
    assert copier.phase == CopierState.END


def test_unreadable_source_does_not_stop_others(copy_test_env, copier) -> None:
    """A dangling symlink fails on its own, the other files are copied."""
    _, source_dir, dest1, dest2 = copy_test_env
    (source_dir / "good.txt").write_text("good")
    os.symlink(source_dir / "gone", source_dir / "link.txt")

    job = CopyJob(sources=[Source(source_dir, ".*")], destinations=[dest1, dest2])
    with pytest.raises(TransferError) as excinfo:
        copier.copy(job)

    assert excinfo.value.source == source_dir / "link.txt"
    assert isinstance(excinfo.value.cause, FileNotFoundError)
    for dest in [dest1, dest2]:
        assert (dest / "good.txt").read_text() == "good"
    assert copier.phase == CopierState.END


def test_checks_share_one_event_loop(copy_test_env) -> None:
    """All files of a checked invocation are verified on the same event loop."""
    _, source_dir, dest1, dest2 = copy_test_env
    for name in ["a.bin", "b.bin", "c.bin"]:
        (source_dir / name).write_bytes(os.urandom(10 * 1024))

    job = CopyJob(sources=[Source(source_dir, ".*")], destinations=[dest1, dest2])
    with FileCopier(evictor=NoopCacheEvictor()) as engine:
        with patch(
            "multicopy.engine.asyncio.new_event_loop", wraps=asyncio.new_event_loop
        ) as new_loop, patch("multicopy.verification.asyncio.run") as run:
            engine.copy(job, check_copies=True)

        assert new_loop.call_count == 1
        run.assert_not_called()
        assert engine._loop is None

    for name in ["a.bin", "b.bin", "c.bin"]:
        assert (dest1 / name).read_bytes() == (source_dir / name).read_bytes()


# ============================================================================
# Progress events
# ============================================================================


def test_phase_transitions(copy_test_env, copier) -> None:
    """Phases run START -> CHECKING_SOURCE -> COPYING -> END, reset restarts."""
    _, source_dir, dest1, _ = copy_test_env
    source_file = source_dir / "file.txt"
    source_file.write_text("phases")
    transitions = []
    copier.add_listener(
        EventType.STATE, lambda e: transitions.append((e.old_value, e.new_value))
    )

    copier.copy(single_file_job(source_file, dest1))
    copier.reset()

    assert transitions == [
        (CopierState.START, CopierState.CHECKING_SOURCE),
        (CopierState.CHECKING_SOURCE, CopierState.COPYING),
        (CopierState.COPYING, CopierState.END),
        (CopierState.END, CopierState.START),
    ]


def test_removed_listener_is_not_called(copy_test_env, copier) -> None:
    """Detached listeners receive nothing."""
    _, source_dir, dest1, _ = copy_test_env
    source_file = source_dir / "file.txt"
    source_file.write_text("quiet")
    events = []
    copier.add_listener(EventType.BYTE_COUNTER, events.append)
    copier.remove_listener(EventType.BYTE_COUNTER, events.append)

    copier.copy(single_file_job(source_file, dest1))

    assert events == []
    assert (dest1 / "file.txt").read_text() == "quiet"
