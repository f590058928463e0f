# exam_portal/utils/generate_id.py
import secrets

SEQUENCE_PADDING = 4


def generate_id(length):
    """Random integer with exactly ``length`` digits."""
    if length < 1:
        raise ValueError("length must be positive")
    low = 10 ** (length - 1)
    high = 10 ** length - 1
    return low + secrets.randbelow(high - low + 1)


def generate_alphabet_id(index):
    """Option label for a zero-based position: A..Z, then AA, AB, ..."""
    quotient, remainder = divmod(index, 26)
    if quotient == 0:
        return chr(65 + remainder)
    return chr(65 + quotient - 1) + chr(65 + remainder)


def construct_student_id_code(unique_id, sequential_num, year, length=SEQUENCE_PADDING):
    """Build the display code, e.g. ``UI/PM/25/0001``."""
    return f"{unique_id}/{year % 100:02d}/{str(sequential_num).zfill(length)}"


def parse_student_id_code(code):
    """Split a display code into ``(prefix, yy, sequential_num)``.

    The prefix may itself contain slashes (``UI/PM``).
    """
    if not isinstance(code, str):
        raise ValueError("student code must be a string")
    parts = code.strip().split("/")
    if len(parts) < 3:
        raise ValueError("expected PREFIX/YY/NUMBER")
    prefix = "/".join(parts[:-2])
    year, number = parts[-2], parts[-1]
    if not prefix or not (len(year) == 2 and year.isdigit()):
        raise ValueError("invalid prefix or year segment")
    if not number.isdigit():
        raise ValueError("invalid sequence number")
    return prefix, year, int(number)


def sequence_from_code(code):
    """Trailing sequence number of a display code (``.../0008`` -> 8)."""
    if not isinstance(code, str):
        raise ValueError("student code must be a string")
    number = code.strip().split("/")[-1]
    if not number.isdigit():
        raise ValueError("invalid sequence number")
    return int(number)
