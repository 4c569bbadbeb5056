"""Experimental point-in-time snapshots of a context.

The snapshot format is not stable and there is no restore path. Callers
must opt in explicitly (see ``Context.create_snapshot``).
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import frontmatter

from contextkit.sync.comparison import ContextLike, iter_leaves, select_components

FORMAT = "contextkit-snapshot/experimental"


@dataclass
class ExperimentalSnapshot:
    taken_at: datetime
    components: dict[str, dict] = field(default_factory=dict)
    modified: dict[str, str] = field(default_factory=dict)

    def to_document(self) -> str:
        """Render as a markdown document: YAML frontmatter plus a JSON body."""
        body = json.dumps(self.components, indent=2, default=str, sort_keys=True)
        post = frontmatter.Post(
            body,
            format=FORMAT,
            experimental=True,
            taken_at=self.taken_at.isoformat(),
            components=sorted(self.components),
            leaves=len(self.modified),
        )
        return frontmatter.dumps(post)


def take_snapshot(context: ContextLike, components: Iterable[str] | None = None) -> ExperimentalSnapshot:
    snapshot = ExperimentalSnapshot(taken_at=datetime.now(timezone.utc))
    for name in select_components(context, components):
        container = context.component(name)
        snapshot.components[name] = container.peek()
        for path, item in iter_leaves(container, name):
            snapshot.modified[path] = item.modified_at.isoformat()
    return snapshot
