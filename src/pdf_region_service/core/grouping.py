"""Partition crop requests by the page they reference."""

from dataclasses import dataclass
from typing import Dict, Iterable, List

from .types import ImageSpec


@dataclass(frozen=True)
class PageGroupEntry:
    page_index: int
    images: List[ImageSpec]


def group_by_page(images: Iterable[ImageSpec]) -> List[PageGroupEntry]:
    """
    Group images by page index.

    Images keep their input order within a page; the pages themselves come
    back in ascending index order.
    """
    page_map: Dict[int, List[ImageSpec]] = {}
    for image in images:
        page_map.setdefault(image.page_index, []).append(image)

    return [
        PageGroupEntry(page_index=page_index, images=page_images)
        for page_index, page_images in sorted(page_map.items())
    ]
