"""Comment system exceptions.

Each error carries a stable ``code`` that ``handle_comment_error`` maps to an
HTTP status.
"""


class CommentError(Exception):
    """Base comment error."""

    def __init__(self, message: str, code: str = "comment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CommentNotFoundError(CommentError):
    """Comment not found."""

    def __init__(self, message: str = "Comment not found"):
        super().__init__(message, "comment_not_found")


class PermissionDeniedError(CommentError):
    """Permission denied for operation."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, "permission_denied")


class CommentPersistenceError(CommentError):
    """A comment write did not reach storage."""

    def __init__(self, message: str = "Failed to save comment"):
        super().__init__(message, "persistence_failed")


class InvalidCommentContentError(CommentError):
    """Edited content was rejected by the sanitizer."""

    def __init__(self, message: str = "Invalid content"):
        super().__init__(message, "invalid_content")
