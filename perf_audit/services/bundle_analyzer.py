"""Bundle size analysis over a build output directory.

Walks the output tree, measures every regular file that is not excluded by an
ignore pattern and reports raw and (optionally) gzip-compressed sizes. Names
are forward-slash relative paths so results compare across platforms.
"""

import asyncio
import gzip
import os
import re
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from perf_audit.errors import AnalysisError
from perf_audit.logging_config import get_logger
from perf_audit.schemas.budget import AnalyzeOptions
from perf_audit.schemas.bundle import BundleInfo

logger = get_logger(__name__)

# Fixed so compressed sizes are reproducible between runs.
DEFAULT_GZIP_LEVEL = 9

# Budget categories, checked in this order.
BUDGET_CATEGORY_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("main", ("main", "index")),
    ("vendor", ("vendor", "chunk")),
    ("runtime", ("runtime",)),
)
DEFAULT_BUDGET_CATEGORY = "main"


def compile_ignore_pattern(pattern: str) -> re.Pattern:
    """
    Translate a glob pattern to a regex matched against a relative name.

    ``**/`` matches zero or more directories, ``**`` anything, ``*`` anything
    but a slash and ``?`` one non-slash character.
    """
    pattern = pattern.replace("\\", "/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts) + r"\Z")


class BundleAnalyzer:
    """Measures the artifacts of one analysis target."""

    def __init__(self, options: AnalyzeOptions, *, gzip_level: int = DEFAULT_GZIP_LEVEL):
        self.options = options
        self.gzip_level = gzip_level
        self._ignore = [
            (pattern, compile_ignore_pattern(pattern)) for pattern in options.ignore_paths
        ]

    @property
    def output_path(self) -> Path:
        return Path(self.options.output_path)

    def analyze_bundles(self) -> list[BundleInfo]:
        """
        Measure every non-ignored regular file under the output directory.

        A missing or empty directory yields an empty list.

        Returns:
            Bundles sorted by name, all with status ``ok``

        Raises:
            AnalysisError: A directory or file under the output path could not be read
        """
        root = self.output_path
        if not root.exists():
            logger.debug("Output path %s does not exist; nothing to analyze", root)
            return []
        if not root.is_dir():
            raise AnalysisError(f"Output path is not a directory: {root}")

        bundles: list[BundleInfo] = []
        for file_path in self._iter_files(root):
            name = file_path.relative_to(root).as_posix()
            if self.should_ignore(name):
                continue
            bundles.append(self._analyze_single_bundle(file_path, name))

        bundles.sort(key=lambda b: b.name)
        logger.debug("Analyzed %d bundle(s) under %s", len(bundles), root)
        return bundles

    async def analyze_bundles_async(self) -> list[BundleInfo]:
        """Run :meth:`analyze_bundles` in a worker thread."""
        return await asyncio.to_thread(self.analyze_bundles)

    def should_ignore(self, name: str) -> bool:
        """Whether a relative bundle name matches any ignore pattern.

        Patterns without a slash also match against the file's base name.
        """
        basename = name.rsplit("/", 1)[-1]
        for pattern, regex in self._ignore:
            if regex.match(name):
                return True
            if "/" not in pattern and regex.match(basename):
                return True
        return False

    def _iter_files(self, root: Path) -> Iterator[Path]:
        stack = [root]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as exc:
                raise AnalysisError(f"Cannot read directory {current}: {exc}") from exc

            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        stack.append(Path(entry.path))
                    elif entry.is_file():
                        yield Path(entry.path)
                except OSError as exc:
                    raise AnalysisError(f"Cannot stat {entry.path}: {exc}") from exc

    def _analyze_single_bundle(self, file_path: Path, name: str) -> BundleInfo:
        try:
            size = file_path.stat().st_size
            gzip_size: Optional[int] = None
            if self.options.gzip:
                gzip_size = compressed_size(file_path.read_bytes(), self.gzip_level)
        except OSError as exc:
            raise AnalysisError(f"Cannot read bundle {file_path}: {exc}") from exc

        return BundleInfo(
            name=name,
            size=size,
            # gzip framing can make tiny files grow; never report more than raw.
            gzip_size=min(gzip_size, size) if gzip_size is not None else None,
            type=self.options.bundle_type,
        )

    @staticmethod
    def calculate_total_size(bundles: Sequence[BundleInfo]) -> tuple[int, Optional[int]]:
        """Total raw size, and total gzip size when every bundle has one."""
        total_size = sum(b.size for b in bundles)
        if bundles and all(b.gzip_size is not None for b in bundles):
            total_gzip: Optional[int] = sum(b.gzip_size for b in bundles)
        else:
            total_gzip = None
        return total_size, total_gzip

    @staticmethod
    def get_budget_key(bundle_name: str) -> str:
        """Budget category of a bundle: ``main``, ``vendor`` or ``runtime``."""
        name = bundle_name.lower()
        for category, needles in BUDGET_CATEGORY_PATTERNS:
            if any(needle in name for needle in needles):
                return category
        return DEFAULT_BUDGET_CATEGORY


def compressed_size(data: bytes, level: int = DEFAULT_GZIP_LEVEL) -> int:
    """Length of ``data`` after gzip compression (mtime pinned for stable output)."""
    return len(gzip.compress(data, compresslevel=level, mtime=0))


def analyze_targets(
    targets: Iterable[AnalyzeOptions], *, gzip_level: int = DEFAULT_GZIP_LEVEL
) -> list[BundleInfo]:
    """Analyze several targets (e.g. client and server output) into one list."""
    bundles: list[BundleInfo] = []
    for options in targets:
        bundles.extend(BundleAnalyzer(options, gzip_level=gzip_level).analyze_bundles())
    return bundles
