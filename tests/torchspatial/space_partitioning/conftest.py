"""Test fixtures for space_partitioning tests."""

import pytest
import torch

WORLD_SIZE = 10.0
SEED = 417311532


def world_with_n_entities(
    n: int,
    *,
    world_size: float = WORLD_SIZE,
    seed: int = SEED,
) -> tuple[list[int], torch.Tensor]:
    """Pseudo-random entities uniformly spread in a cube of half-extent ``world_size``.

    Reproducible for a fixed ``seed``.
    """
    generator = torch.Generator().manual_seed(seed)
    positions = (
        torch.rand(n, 3, generator=generator, dtype=torch.float64) * 2.0 - 1.0
    ) * world_size

    return list(range(n)), positions


def sample_points(n: int, *, world_size: float = WORLD_SIZE, seed: int = 7) -> list:
    generator = torch.Generator().manual_seed(seed)
    points = (torch.rand(n, 3, generator=generator, dtype=torch.float64) * 2.0 - 1.0) * world_size
    return [tuple(point) for point in points.tolist()]


@pytest.fixture
def world():
    """Factory fixture returning ``(identifiers, positions)`` for ``n`` entities."""
    return world_with_n_entities


@pytest.fixture
def queries():
    """Factory fixture returning ``n`` deterministic sample points."""
    return sample_points
