import secrets
import string
import time


ALPHABET = string.digits + string.ascii_lowercase
SIZE = 9


def nanoid(size: int = SIZE) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(size))


def new_record_id() -> str:
    # Millisecond prefix keeps ids roughly sortable by creation.
    return f"{int(time.time() * 1000)}{nanoid()}"
