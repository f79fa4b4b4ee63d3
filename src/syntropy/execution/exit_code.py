"""Exit status normalisation."""

MIN_EXIT_CODE = 0
MAX_EXIT_CODE = 255


def clamp_exit_code(code: int) -> int:
    """Clamp a status into the range a process can report.

    Negative values (including death by signal) map to 1 so they still
    read as failure; values above 255 saturate at 255.
    """
    if code < MIN_EXIT_CODE:
        return 1
    if code > MAX_EXIT_CODE:
        return MAX_EXIT_CODE
    return code
