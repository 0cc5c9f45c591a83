"""Static joint tables.

`POSE_CHAIN` is the parent -> child edge list the network's displacement
channels are laid out by (edge `i` uses channel `i` for y and
`i + NUM_EDGES` for x). `SKELETON_PAIRS` is the set of bones drawn on screen;
it differs from the decoding chain (no nose-shoulder links, and it includes the
shoulder and hip cross-links).
"""

from __future__ import annotations

from collections import deque

from posedecode.core.types import NUM_PARTS, Part

Edge = tuple[Part, Part]

POSE_CHAIN: tuple[Edge, ...] = (
    (Part.NOSE, Part.LEFT_EYE),
    (Part.LEFT_EYE, Part.LEFT_EAR),
    (Part.NOSE, Part.RIGHT_EYE),
    (Part.RIGHT_EYE, Part.RIGHT_EAR),
    (Part.NOSE, Part.LEFT_SHOULDER),
    (Part.LEFT_SHOULDER, Part.LEFT_ELBOW),
    (Part.LEFT_ELBOW, Part.LEFT_WRIST),
    (Part.LEFT_SHOULDER, Part.LEFT_HIP),
    (Part.LEFT_HIP, Part.LEFT_KNEE),
    (Part.LEFT_KNEE, Part.LEFT_ANKLE),
    (Part.NOSE, Part.RIGHT_SHOULDER),
    (Part.RIGHT_SHOULDER, Part.RIGHT_ELBOW),
    (Part.RIGHT_ELBOW, Part.RIGHT_WRIST),
    (Part.RIGHT_SHOULDER, Part.RIGHT_HIP),
    (Part.RIGHT_HIP, Part.RIGHT_KNEE),
    (Part.RIGHT_KNEE, Part.RIGHT_ANKLE),
)

NUM_EDGES = len(POSE_CHAIN)

SKELETON_PAIRS: tuple[Edge, ...] = (
    (Part.LEFT_WRIST, Part.LEFT_ELBOW),
    (Part.LEFT_ELBOW, Part.LEFT_SHOULDER),
    (Part.LEFT_SHOULDER, Part.RIGHT_SHOULDER),
    (Part.RIGHT_SHOULDER, Part.RIGHT_ELBOW),
    (Part.RIGHT_ELBOW, Part.RIGHT_WRIST),
    (Part.LEFT_SHOULDER, Part.LEFT_HIP),
    (Part.RIGHT_SHOULDER, Part.RIGHT_HIP),
    (Part.LEFT_HIP, Part.RIGHT_HIP),
    (Part.LEFT_HIP, Part.LEFT_KNEE),
    (Part.LEFT_KNEE, Part.LEFT_ANKLE),
    (Part.RIGHT_HIP, Part.RIGHT_KNEE),
    (Part.RIGHT_KNEE, Part.RIGHT_ANKLE),
    (Part.NOSE, Part.LEFT_EYE),
    (Part.LEFT_EYE, Part.LEFT_EAR),
    (Part.NOSE, Part.RIGHT_EYE),
    (Part.RIGHT_EYE, Part.RIGHT_EAR),
)

# Neighbor lists for traversal: part -> [(edge_id, neighbor, forward)].
# `forward` is True when walking parent -> child along the edge.
Adjacency = tuple[tuple[tuple[int, Part, bool], ...], ...]


def build_adjacency(chain: tuple[Edge, ...]) -> Adjacency:
    """Build a per-part neighbor table from a parent -> child edge list."""

    table: list[list[tuple[int, Part, bool]]] = [[] for _ in range(NUM_PARTS)]
    for edge_id, (parent, child) in enumerate(chain):
        table[int(parent)].append((edge_id, child, True))
        table[int(child)].append((edge_id, parent, False))
    return tuple(tuple(neighbors) for neighbors in table)


def validate_chain(chain: tuple[Edge, ...]) -> None:
    """Check the edge list is a tree spanning every part.

    Raises:
        ValueError: on self-loops, duplicate edges, or unreachable parts.
    """

    seen: set[frozenset[Part]] = set()
    for parent, child in chain:
        if parent == child:
            raise ValueError(f"self-loop on {parent.name_camel}")
        key = frozenset((parent, child))
        if key in seen:
            raise ValueError(f"duplicate edge {parent.name_camel}-{child.name_camel}")
        seen.add(key)

    adjacency = build_adjacency(chain)
    reached = {Part(0)}
    queue = deque([Part(0)])
    while queue:
        part = queue.popleft()
        for _, neighbor, _ in adjacency[int(part)]:
            if neighbor not in reached:
                reached.add(neighbor)
                queue.append(neighbor)
    missing = [p.name_camel for p in Part if p not in reached]
    if missing:
        raise ValueError(f"parts not connected to the chain: {', '.join(missing)}")


validate_chain(POSE_CHAIN)
ADJACENCY: Adjacency = build_adjacency(POSE_CHAIN)
