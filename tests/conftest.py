"""Shared test fixtures for the popgraph test suite.

Synthetic cohorts are small (tens of vertices) so that every test runs the
dense eigensolver path in milliseconds.
"""

import logging

import pytest

from popgraph.config import PopulationGraphConfig

from tests.synthetic import (
    N_VERTICES,
    InMemoryLoader,
    make_cohort,
    random_affinity,
    random_timeseries,
)


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep popgraph INFO logs out of the test output."""
    logging.getLogger("popgraph").setLevel(logging.WARNING)
    yield
    logging.getLogger("popgraph").setLevel(logging.NOTSET)


@pytest.fixture
def small_config(tmp_path):
    """Configuration matching the synthetic cohort."""
    return PopulationGraphConfig(
        hemisphere="L",
        n_vertices=N_VERTICES,
        num_eigvectors=5,
        num_ordered=3,
        save_output=False,
        output_dir=tmp_path,
    )


@pytest.fixture
def affinity():
    return random_affinity()


@pytest.fixture
def timeseries():
    return random_timeseries()


@pytest.fixture
def cohort():
    return make_cohort(3)


@pytest.fixture
def loader(cohort):
    return InMemoryLoader(cohort)


@pytest.fixture
def roster(cohort):
    return list(cohort)
