"""
Fork-join execution of independent units of work.

Units (one variable at one grid point, one coefficient perturbation, one
simulation draw) only read shared inputs, so they can run in any order.
Results always come back in submission order.
"""

from typing import Callable, List, Sequence, TypeVar

from joblib import Parallel, delayed
from tqdm import tqdm

T = TypeVar("T")
R = TypeVar("R")


def run_tasks(
    fn: Callable[[T], R],
    items: Sequence[T],
    n_jobs: int = 1,
    desc: str = "",
    verbose: bool = False,
) -> List[R]:
    """
    Apply fn to every item, sequentially or with a thread pool.

    Workers are threads; fn and the items it reads must be safe to share.

    Args:
        fn: Work function
        items: Work units
        n_jobs: 1 for a plain loop, otherwise joblib worker count (-1 = all cores)
        desc: Progress bar label
        verbose: Show progress

    Returns:
        List of results, in the order of items
    """
    if n_jobs == 1:
        iterator = items
        if verbose:
            iterator = tqdm(items, desc=desc, ncols=80)
        return [fn(item) for item in iterator]

    return Parallel(n_jobs=n_jobs, prefer="threads", verbose=10 if verbose else 0)(
        delayed(fn)(item) for item in items
    )
