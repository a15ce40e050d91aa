"""File naming helpers shared by the watcher, orchestrator and CLI."""

from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..core.config import DEFAULT_IMAGE_PATTERNS

# Partially transferred files are written under this prefix and renamed
# once complete; they are never picked up.
PENDING_PREFIX = ".pending-"

BATCH_SUFFIX = "_processed"


def is_image_file(path: Union[str, Path], patterns: Optional[Iterable[str]] = None) -> bool:
    """Check whether ``path`` names an image the pipeline should process.

    Matching is case-insensitive on the file name.
    """
    path = Path(path)
    name = path.name
    if not name or name.startswith(PENDING_PREFIX):
        return False
    lowered = Path(name.lower())
    return any(lowered.match(p.lower()) for p in (patterns or DEFAULT_IMAGE_PATTERNS))


def watch_output_path(output_dir: Union[str, Path], source: Union[str, Path]) -> Path:
    """Destination for a watched file: same name, in the output directory."""
    return Path(output_dir) / Path(source).name


def batch_output_path(output_dir: Union[str, Path], source: Union[str, Path]) -> Path:
    """Destination for a manual batch file: ``<stem>_processed<ext>``."""
    source = Path(source)
    return Path(output_dir) / f"{source.stem}{BATCH_SUFFIX}{source.suffix}"


def expand_image_paths(
    paths: Iterable[Union[str, Path]],
    patterns: Optional[Iterable[str]] = None,
) -> List[Path]:
    """Expand directories into their image files, keeping order.

    Files named explicitly are kept as given even if they do not match
    the patterns, so a bad selection fails per item instead of vanishing.
    Directory contents are sorted by name and filtered.
    """
    patterns = list(patterns or DEFAULT_IMAGE_PATTERNS)
    result: List[Path] = []
    for entry in paths:
        entry = Path(entry)
        if entry.is_dir():
            result.extend(
                p for p in sorted(entry.iterdir())
                if p.is_file() and is_image_file(p, patterns)
            )
        else:
            result.append(entry)
    return result



def list_output_images(
    directory: Union[str, Path],
    patterns: Optional[Iterable[str]] = None,
) -> List[Path]:
    """Image files directly inside ``directory``, newest first by mtime.

    A missing directory yields an empty list.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []
    images = [p for p in directory.iterdir() if p.is_file() and is_image_file(p, patterns)]
    return sorted(images, key=lambda p: p.stat().st_mtime, reverse=True)


__all__ = [
    "PENDING_PREFIX",
    "BATCH_SUFFIX",
    "is_image_file",
    "watch_output_path",
    "batch_output_path",
    "expand_image_paths",
    "list_output_images",
]
