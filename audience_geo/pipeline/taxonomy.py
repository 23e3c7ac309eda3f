"""Audience segment taxonomy listing and hierarchy."""

from __future__ import annotations

from typing import Iterable, Protocol

from audience_geo.common.models import SegmentNode

PATH_SEPARATOR = " > "
DEFAULT_PATH = "Other"


class TaxonomySource(Protocol):
    def fetch_taxonomy(self) -> list[dict]:
        ...


def parse_segments(rows: Iterable[dict], *, id_column: str, name_column: str, path_column: str) -> list[dict]:
    segments = []
    for row in rows:
        segment_id = row.get(id_column)
        if segment_id in (None, ""):
            continue
        segments.append(
            {
                "segment_id": str(segment_id),
                "name": row.get(name_column) or str(segment_id),
                "parent_path": row.get(path_column) or DEFAULT_PATH,
            }
        )
    return sorted(segments, key=lambda item: (item["name"], item["segment_id"]))


def fetch_segment_taxonomy(store: TaxonomySource, table_config: dict) -> list[dict]:
    return parse_segments(
        store.fetch_taxonomy(),
        id_column=table_config["id_column"],
        name_column=table_config["name_column"],
        path_column=table_config["path_column"],
    )


def build_segment_hierarchy(segments: Iterable[dict]) -> dict[str, SegmentNode]:
    """Nest segments under their ``" > "``-separated parent path.

    Each segment is attached to the node for the last element of its path.
    """
    hierarchy: dict[str, SegmentNode] = {}
    for segment in segments:
        parts = [part.strip() for part in (segment.get("parent_path") or DEFAULT_PATH).split(PATH_SEPARATOR)]
        parts = [part for part in parts if part] or [DEFAULT_PATH]

        level = hierarchy
        full_path = ""
        for part in parts:
            full_path = f"{full_path}{PATH_SEPARATOR}{part}" if full_path else part
            node = level.get(part)
            if node is None:
                node = SegmentNode(name=part, full_path=full_path)
                level[part] = node
            level = node.children
        node.segments.append(segment)
    return hierarchy


def hierarchy_to_dict(hierarchy: dict[str, SegmentNode]) -> dict:
    return {key: node.to_dict() for key, node in sorted(hierarchy.items())}
