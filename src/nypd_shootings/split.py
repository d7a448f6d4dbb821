"""
Seeded train/evaluation split of an aggregate table.

The split is a pure function of (row count, fraction, seed): the same inputs
always select the same positional indices, so repeated runs are comparable.
"""

import math
from dataclasses import dataclass

import numpy as np
import pandas as pd


DEFAULT_TRAIN_FRACTION = 0.8
DEFAULT_SPLIT_SEED = 12345


@dataclass
class DatasetSplit:
    """Disjoint, covering partition of a table's rows."""
    train: pd.DataFrame
    test: pd.DataFrame
    train_positions: np.ndarray
    test_positions: np.ndarray
    seed: int
    train_fraction: float


def split_dataset(
    df: pd.DataFrame,
    train_fraction: float = DEFAULT_TRAIN_FRACTION,
    seed: int = DEFAULT_SPLIT_SEED,
) -> DatasetSplit:
    """
    Select ``floor(train_fraction * N)`` rows without replacement for training.

    The remaining rows form the evaluation set. Both subsets keep the input's
    relative row order and index labels.

    Raises:
        ValueError: If ``train_fraction`` is outside [0, 1]
    """
    if not 0.0 <= train_fraction <= 1.0:
        raise ValueError(f"train_fraction must be within [0, 1], got {train_fraction}")

    n = len(df)
    n_train = math.floor(train_fraction * n)

    rng = np.random.default_rng(seed)
    chosen = rng.choice(n, size=n_train, replace=False) if n_train else np.array([], dtype=int)

    in_train = np.zeros(n, dtype=bool)
    in_train[chosen] = True
    train_positions = np.flatnonzero(in_train)
    test_positions = np.flatnonzero(~in_train)

    return DatasetSplit(
        train=df.iloc[train_positions].copy(),
        test=df.iloc[test_positions].copy(),
        train_positions=train_positions,
        test_positions=test_positions,
        seed=seed,
        train_fraction=train_fraction,
    )
