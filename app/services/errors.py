class ValidationError(ValueError):
    pass


class NotFoundError(LookupError):
    pass


class AuthenticationError(Exception):
    pass


class AuthorizationError(PermissionError):
    pass


class StoreError(RuntimeError):
    pass


class ExternalServiceError(RuntimeError):
    pass


class BoardNotFoundError(NotFoundError):
    def __init__(self, board_id: str) -> None:
        super().__init__(f"Board '{board_id}' not found")
        self.board_id = board_id


class GroupNotFoundError(NotFoundError):
    def __init__(self, group_id: str) -> None:
        super().__init__(f"Group '{group_id}' not found")
        self.group_id = group_id


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task '{task_id}' not found")
        self.task_id = task_id


class CommentNotFoundError(NotFoundError):
    def __init__(self, comment_id: str) -> None:
        super().__init__(f"Comment '{comment_id}' not found")
        self.comment_id = comment_id


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User '{user_id}' not found")
        self.user_id = user_id


class CommentAuthorMismatchError(AuthorizationError):
    def __init__(self, comment_id: str, user_id: str | None) -> None:
        super().__init__(
            f"User '{user_id}' is not the author of comment '{comment_id}'"
        )
        self.comment_id = comment_id
        self.user_id = user_id


class MissingSignupFieldsError(ValidationError):
    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Missing required signup information: " + ", ".join(missing)
        )
        self.missing = missing


class EmailAlreadyRegisteredError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Email already registered")


class InvalidCredentialsError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class NotAuthenticatedError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Not authenticated")


class BoardGenerationError(ExternalServiceError):
    pass
