"""Error taxonomy shared by the store, the tree engine, and the client mirror.

Every error carries a stable ``code`` so it survives a trip over HTTP and can
be raised again on the client side with the same class.
"""


class TreeError(Exception):
    code = "tree_error"

    @classmethod
    def from_message(cls, message: str) -> "TreeError":
        """Rebuild an error received over the wire, without its structured fields."""
        error = cls.__new__(cls)
        Exception.__init__(error, message)
        return error


class NotFoundError(TreeError):
    code = "not_found"


class NodeNotFoundError(NotFoundError):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class WorkspaceNotFoundError(NotFoundError):
    def __init__(self, workspace_id: str) -> None:
        self.workspace_id = workspace_id
        super().__init__(f"Workspace not found: {workspace_id}")


class BlockNotFoundError(NotFoundError):
    def __init__(self, block_id: str) -> None:
        self.block_id = block_id
        super().__init__(f"Block not found: {block_id}")


class ValidationError(TreeError):
    code = "validation_error"


class CircularReferenceError(TreeError):
    code = "circular_reference"

    def __init__(self, node_id: str, new_parent_id: str) -> None:
        self.node_id = node_id
        self.new_parent_id = new_parent_id
        super().__init__(
            f"Moving {node_id} under {new_parent_id} would create a circular reference"
        )


class ConflictError(TreeError):
    """A concurrent writer won the race. The whole operation may be retried."""

    code = "conflict"


class DepthLimitExceededError(TreeError):
    """An ancestor walk ran past the ceiling: the stored parent links loop."""

    code = "depth_limit_exceeded"

    def __init__(self, node_id: str, max_depth: int) -> None:
        self.node_id = node_id
        self.max_depth = max_depth
        super().__init__(
            f"Ancestor walk from {node_id} exceeded {max_depth} hops (possible cycle)"
        )


ERRORS_BY_CODE: dict[str, type[TreeError]] = {
    cls.code: cls
    for cls in (
        NotFoundError,
        ValidationError,
        CircularReferenceError,
        ConflictError,
        DepthLimitExceededError,
    )
}
