"""Reply-tree helpers for public comment listings.

Pure functions over ``CommentNode``. A node whose parent is not in the input
(deleted, hidden or moderated) is promoted to a root so no reply is lost.
"""

from collections.abc import Iterable, Sequence
from uuid import UUID

from .schemas import CommentNode, CommentPublicResponse


def build_comment_tree(nodes: Sequence[CommentPublicResponse]) -> list[CommentNode]:
    """Nest a flat comment list under ``replies``, keeping input order."""
    by_id: dict[UUID, CommentNode] = {}
    for node in nodes:
        by_id[node.id] = CommentNode(**node.model_dump(exclude={"replies"}), replies=[])

    roots: list[CommentNode] = []
    for node in nodes:
        mapped = by_id[node.id]
        parent = by_id.get(node.parent_id) if node.parent_id else None
        if parent is not None and parent is not mapped:
            parent.replies.append(mapped)
        else:
            roots.append(mapped)
    return roots


def _walk(forest: Iterable[CommentNode]) -> Iterable[CommentNode]:
    for node in forest:
        yield node
        yield from _walk(node.replies)


def count_comment_nodes(forest: Iterable[CommentNode]) -> int:
    """Total number of comments including nested replies."""
    return sum(1 for _ in _walk(forest))


def collect_comment_ids(forest: Iterable[CommentNode]) -> list[UUID]:
    """Ids of every node, depth first."""
    return [node.id for node in _walk(forest)]


def attach_liked_by_me(forest: list[CommentNode], liked_ids: set[UUID]) -> list[CommentNode]:
    for node in _walk(forest):
        node.liked_by_me = node.id in liked_ids
    return forest


def attach_is_mine(forest: list[CommentNode], owned_ids: set[UUID]) -> list[CommentNode]:
    for node in _walk(forest):
        node.is_mine = node.id in owned_ids
    return forest
