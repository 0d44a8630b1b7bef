import numba


def resolve_num_workers(num_workers: int | None = None) -> int:
    """
    Number of workers used by the row-parallel passes.

    Rows are dealt to workers round-robin (row % num_workers == worker), so
    the partition depends only on this number. None means one worker per
    numba thread, which numba sizes from the available cores (or the
    NUMBA_NUM_THREADS environment variable).
    """
    if num_workers is None:
        return int(numba.get_num_threads())
    if num_workers < 1:
        raise ValueError(f"num_workers must be at least 1, got {num_workers}")
    return int(num_workers)
