WATCH_LABEL_PREFIX = "watching:"


def board_topic(board_id: str) -> str:
    return str(board_id)


def watch_label(user_id: str) -> str:
    return f"{WATCH_LABEL_PREFIX}{user_id}"
