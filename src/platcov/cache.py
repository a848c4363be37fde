# cache.py
from __future__ import annotations

import hashlib
import io
import json
import os
import shutil
import tarfile
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence

from .model import CacheSpec, DEFAULT_LOCK_GLOB

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Dependency caching, one entry per (execution environment, lock file state):
#   cache_key = "<runner os>-cargo-" + hash(contents of every Cargo.lock)
#
# Cache artifact:
#   a tar.gz containing the declared cache paths (toolchain binaries,
#   registry index + downloads, git checkouts, target/) plus a manifest.json.
#
# Entries are written once per key and never overwritten or deleted here.
#
# Example usage in runner (high-level):
#   store = CacheStore(".platcov/cache")
#   key = compute_cache_key(job.os, workspace, job.cache)
#   hit = store.restore(key, job.cache.paths, workspace=workspace)
#   run_job(job)
#   if hit is None:
#       store.save(key, job.cache.paths, workspace=workspace)
# ---------------------------------------------------------------------


DEFAULT_CACHE_DIR = ".platcov/cache"
KEY_PREFIX = "cargo"
# lock files inside these dirs are build output or vcs data, not inputs
LOCK_SCAN_EXCLUDES = {"target", ".git", ".platcov"}


@dataclass(frozen=True)
class CacheHit:
    key: str
    reason: str  # human readable
    manifest: Dict


def _relpath(p: Path, root: Path) -> str:
    return str(p.resolve().relative_to(root.resolve())).replace("\\", "/")


def _iter_files_under(root: Path) -> Iterable[Path]:
    # deterministic traversal
    for p in sorted(root.rglob("*")):
        if p.is_file():
            yield p


def _hash_file_contents(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        while True:
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def find_lock_files(workspace: str | Path, lock_glob: str = DEFAULT_LOCK_GLOB) -> List[Path]:
    root = Path(workspace).resolve()
    found = []
    for p in root.glob(lock_glob):
        if not p.is_file():
            continue
        parts = PurePosixPath(_relpath(p, root)).parts[:-1]
        if LOCK_SCAN_EXCLUDES.intersection(parts):
            continue
        found.append(p)
    return sorted(found, key=lambda p: _relpath(p, root))


def hash_lock_files(workspace: str | Path, lock_glob: str = DEFAULT_LOCK_GLOB) -> str:
    """
    Hash every matching lock file into one digest.

    Each file is hashed on its own, the digests are fed in relative-path order
    into an outer sha256. No matching file -> "" (empty hash, stable).
    """
    files = find_lock_files(workspace, lock_glob)
    if not files:
        return ""
    outer = hashlib.sha256()
    for f in files:
        outer.update(bytes.fromhex(_hash_file_contents(f)))
    return outer.hexdigest()


def compute_cache_key(
    os_id: str,
    workspace: str | Path = ".",
    spec: Optional[CacheSpec] = None,
) -> str:
    """
    Cache key for a job's dependency bundle.

    Same lock bytes + same OS -> same key. Any lock byte change -> new key.
    The OS identifier is part of the key because target/ is not portable.
    """
    lock_glob = spec.lock_glob if spec is not None else DEFAULT_LOCK_GLOB
    return f"{os_id}-{KEY_PREFIX}-{hash_lock_files(workspace, lock_glob)}"


def _resolve_cache_path(entry: str, workspace: Path) -> Path:
    p = Path(entry).expanduser()
    if not p.is_absolute():
        p = workspace / p
    return p.resolve()


def _safe_member_path(name: str) -> PurePosixPath | None:
    rel = PurePosixPath(name)
    if rel.is_absolute() or ".." in rel.parts:
        return None
    return rel


class CacheStore:
    """
    File-based cache store:
      root/
        <os>/
          <key>.tar.gz
          <key>.manifest.json

    Archive members are stored as "<index>/<relative path>", where <index> is
    the position of the cache path in the job's CacheSpec.
    """

    def __init__(self, root: str | Path = DEFAULT_CACHE_DIR):
        self.root = Path(root).resolve()

    @staticmethod
    def _namespace(key: str) -> str:
        # keys always start with the OS identifier
        return key.split("-", 1)[0] or "_"

    def _entry_dir(self, key: str) -> Path:
        return self.root / self._namespace(key)

    def artifact_path(self, key: str) -> Path:
        return self._entry_dir(key) / f"{key}.tar.gz"

    def manifest_path(self, key: str) -> Path:
        return self._entry_dir(key) / f"{key}.manifest.json"

    def exists(self, key: str) -> bool:
        return self.artifact_path(key).exists() and self.manifest_path(key).exists()

    def restore(
        self,
        key: str,
        paths: Sequence[str],
        *,
        workspace: str | Path = ".",
    ) -> CacheHit | None:
        """
        Restore cached paths for exactly this key.

        Best-effort: a missing or unreadable entry is a miss (None), never an error.
        Restore is "overwrite by extraction".
        """
        try:
            if not self.exists(key):
                return None
            stored = json.loads(self.manifest_path(key).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if stored.get("key") != key or list(stored.get("paths", [])) != list(paths):
            return None

        root = Path(workspace).resolve()
        targets = [_resolve_cache_path(p, root) for p in paths]
        file_entries = set(stored.get("file_entries", []))
        restored = 0
        try:
            with tarfile.open(str(self.artifact_path(key)), mode="r:gz") as tar:
                for member in tar.getmembers():
                    if not member.isfile():
                        continue
                    rel = _safe_member_path(member.name)
                    if rel is None or len(rel.parts) < 2 or not rel.parts[0].isdigit():
                        continue
                    idx = int(rel.parts[0])
                    if idx >= len(targets):
                        continue
                    if idx in file_entries:
                        dest = targets[idx]
                    else:
                        dest = targets[idx].joinpath(*rel.parts[1:])
                    src = tar.extractfile(member)
                    if src is None:
                        continue
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    with src, dest.open("wb") as out:
                        shutil.copyfileobj(src, out)
                    if member.mode & 0o111:
                        os.chmod(dest, dest.stat().st_mode | 0o111)
                    restored += 1
        except (OSError, tarfile.TarError):
            # a broken entry degrades to a rebuild, same as a miss
            return None

        return CacheHit(key=key, reason=f"restored {restored} file(s)", manifest=stored)

    def save(
        self,
        key: str,
        paths: Sequence[str],
        *,
        workspace: str | Path = ".",
    ) -> Dict | None:
        """
        Save paths into the entry for this key. Returns the manifest, or None
        if an entry for the key already exists (entries are immutable).
        """
        if self.exists(key):
            return None

        root = Path(workspace).resolve()
        art = self.artifact_path(key)
        man = self.manifest_path(key)
        files: List[str] = []
        file_entries: List[int] = []

        art.parent.mkdir(parents=True, exist_ok=True)
        tmp = art.with_suffix(".tmp")
        try:
            # Build tar.gz in tmp, then atomic rename
            with tarfile.open(str(tmp), mode="w:gz") as tar:
                for idx, entry in enumerate(paths):
                    src = _resolve_cache_path(entry, root)
                    if not src.exists():
                        continue
                    if src.is_file():
                        file_entries.append(idx)
                        members = [src]
                    else:
                        members = list(_iter_files_under(src))
                    for f in members:
                        rel = f.name if f == src else _relpath(f, src)
                        arcname = f"{idx}/{rel}"
                        tar.add(str(f), arcname=arcname, recursive=False)
                        files.append(arcname)

                manifest = {
                    "key": key,
                    "paths": list(paths),
                    "files": len(files),
                    "file_entries": file_entries,
                    "generated_at_unix": int(time.time()),
                }
                payload = json.dumps(manifest, sort_keys=True, indent=2).encode("utf-8")
                info = tarfile.TarInfo(name=f".platcov_cache_manifest/{key}.manifest.json")
                info.size = len(payload)
                info.mtime = int(time.time())
                tar.addfile(info, fileobj=io.BytesIO(payload))

            tmp.replace(art)
            man.write_text(json.dumps(manifest, sort_keys=True, indent=2), encoding="utf-8")
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)

        return manifest
