#!/usr/bin/env python3
"""
Quick demonstration of multicopy.

Creates a small camera card layout and copies it to two backup drives, then
copies it again with a checksum check, watching the progress events.
"""

import logging
import sys
import tempfile
import time
from pathlib import Path

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from multicopy import (
    CopierConfig,
    CopyJob,
    DigestMismatchError,
    EventType,
    FileCopier,
    Source,
)


def create_demo_file(file_path: Path, content: str = "Demo content", size_kb: int = 100) -> None:
    """
    Create a demo file with specified content and size.

    Parameters
    ----------
    file_path : Path
        Where to create the file
    content : str
        Base content to repeat
    size_kb : int
        Approximate size in KB
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    target_bytes = size_kb * 1024
    content_bytes = content.encode("utf-8")
    repeats = max(1, target_bytes // len(content_bytes))

    with open(file_path, "w", encoding="utf-8") as f:
        for i in range(repeats):
            f.write(f"{content} - Line {i + 1}\n")

    print(f"📁 Created demo file: {file_path} ({file_path.stat().st_size:,} bytes)")


def create_card(card: Path) -> None:
    """Lay out a camera card with clips, sidecar files and an empty folder."""
    create_demo_file(card / "CLIPS" / "A001C001.mov", "Camera footage A001", size_kb=2000)
    create_demo_file(card / "CLIPS" / "A001C002.mov", "Camera footage A002", size_kb=1500)
    create_demo_file(card / "CLIPS" / "A001C001.xml", "Clip metadata", size_kb=4)
    create_demo_file(card / "notes.txt", "Shot list", size_kb=1)
    (card / "THUMBS").mkdir(parents=True, exist_ok=True)


def demo_card_backup(temp_path: Path) -> None:
    """Copy a whole card to two drives."""
    print("\n" + "=" * 50)
    print("🚀 DEMO: Card Backup to Two Drives")
    print("=" * 50)

    card = temp_path / "card"
    create_card(card)
    backup1 = temp_path / "backup_drive_1"
    backup2 = temp_path / "backup_drive_2"
    backup1.mkdir()
    backup2.mkdir()

    job = CopyJob(sources=[Source(card, ".*", recursive=True)], destinations=[backup1, backup2])

    config = CopierConfig(initial_slice=256 * 1024, evict_caches=False)
    with FileCopier(config=config) as copier:
        copier.add_listener(EventType.STATE, lambda e: print(f"🔄 {e.new_value.value}"))
        copier.add_listener(
            EventType.BYTE_COUNTER,
            lambda e: print(f"📊 {e.new_value:,} of {copier.byte_count:,} bytes"),
        )

        start_time = time.time()
        copier.copy(job)
        duration = time.time() - start_time

    print(f"✅ Copy completed in {duration:.2f} seconds")
    for backup in [backup1, backup2]:
        for path in sorted(backup.rglob("*")):
            kind = "📂" if path.is_dir() else "📄"
            print(f"   {kind} {path.relative_to(temp_path)}")


def demo_checked_copy(temp_path: Path) -> None:
    """Copy the clips with a checksum check, twice, reusing the digests."""
    print("\n" + "=" * 50)
    print("🔐 DEMO: Checked Copy with Digest Cache")
    print("=" * 50)

    card = temp_path / "card"
    job_sources = [Source(card / "CLIPS", r".*\.mov")]
    digest_cache: dict[str, bytes] = {}

    with FileCopier(digest_cache=digest_cache, config=CopierConfig(evict_caches=False)) as copier:
        copier.add_listener(EventType.FILE, lambda e: print(f"📹 {e.new_value}"))

        for name in ["shuttle_1", "shuttle_2"]:
            destination = temp_path / name
            destination.mkdir()
            try:
                copier.copy(CopyJob(job_sources, [destination]), check_copies=True)
                print(f"✅ {name}: all copies verified")
            except DigestMismatchError as e:
                print(f"❌ {name}: {e}")
            copier.reset()

    for source, digest in digest_cache.items():
        print(f"🔑 {Path(source).name}: {digest.hex()}")


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    print("🎬 multicopy quick demo")
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        demo_card_backup(temp_path)
        demo_checked_copy(temp_path)
    print("\n🎉 Demo finished")


if __name__ == "__main__":
    main()
