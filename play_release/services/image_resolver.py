"""Locate listing images inside a language directory."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

from ..platforms import ImageSlot, SlotKind

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")
IMAGES_DIRNAME = "images"


def _find_single(images_dir: Path, slot: ImageSlot) -> Iterator[Path]:
    for extension in IMAGE_EXTENSIONS:
        candidate = images_dir / f"{slot.value}{extension}"
        if candidate.is_file():
            yield candidate
            return


def _list_directory(images_dir: Path, slot: ImageSlot) -> Iterator[Path]:
    slot_dir = images_dir / slot.value
    if not slot_dir.is_dir():
        return
    yield from sorted(
        (child for child in slot_dir.iterdir() if child.is_file()),
        key=lambda path: path.name,
    )


_STRATEGIES: dict[SlotKind, Callable[[Path, ImageSlot], Iterator[Path]]] = {
    SlotKind.SINGLETON: _find_single,
    SlotKind.REPEATING: _list_directory,
}


def resolve_images(language_dir: Path, slot: ImageSlot) -> Iterator[Path]:
    """Yield the files feeding ``slot`` under ``language_dir/images``.

    Singleton slots yield at most one file, probing ``.png``, ``.jpg`` and
    ``.jpeg`` in that order. Repeating slots yield every regular file in the
    slot's sub-directory, sorted by name. Missing locations yield nothing.
    """
    strategy = _STRATEGIES[ImageSlot(slot).kind]
    return strategy(language_dir / IMAGES_DIRNAME, ImageSlot(slot))


def has_image_extension(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


__all__ = ["IMAGE_EXTENSIONS", "has_image_extension", "resolve_images"]
