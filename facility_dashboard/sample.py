"""Seed a six-month demo dataset for the default facility."""

from typing import List, Optional

import numpy as np
from loguru import logger

from .config import configure_logging, settings
from .periods import shift_period
from .schema import DEFAULT_FACILITY_NAME, Dataset, FacilityPeriod, PeriodValues
from .state import new_dataset
from .store import DatasetStore

SAMPLE_DATASET_ID = "sample-dataset-1"


def generate_sample_periods(
    start: str = "2024-01",
    months: int = 6,
    facility_name: str = DEFAULT_FACILITY_NAME,
    seed: Optional[int] = None,
) -> List[FacilityPeriod]:
    rng = np.random.default_rng(seed)
    slug = facility_name.lower().replace(" ", "-")
    out = []
    for i in range(months):
        period = shift_period(start, i)
        revenue = 850_000 + (rng.random() - 0.5) * 100_000
        values = PeriodValues(
            revenue_total=round(revenue),
            labor_expense=round(revenue * (0.45 + (rng.random() - 0.5) * 0.05)),
            non_labor_expense=round(revenue * (0.25 + (rng.random() - 0.5) * 0.03)),
            rent=round(revenue * (0.15 + (rng.random() - 0.5) * 0.02)),
            other_income=round(revenue * 0.02 * rng.random()),
            depreciation=round(revenue * 0.08 * (0.8 + rng.random() * 0.4)),
            interest=round(revenue * 0.03 * (0.8 + rng.random() * 0.4)),
            census=round(85 + (rng.random() - 0.5) * 10),
            adr=round(280 + (rng.random() - 0.5) * 20),
        )
        out.append(FacilityPeriod(
            id=f"{slug}-{period}", facility_name=facility_name, period=period, values=values,
        ))
    return out


def seed_sample_data(store: DatasetStore, seed: Optional[int] = None) -> Dataset:
    """Add the sample dataset unless it is already stored."""
    existing = store.get_dataset(SAMPLE_DATASET_ID)
    if existing is not None:
        logger.info("Sample data already exists")
        return existing

    dataset = new_dataset("Sample Financial Data", generate_sample_periods(seed=seed))
    dataset = dataset.model_copy(update={"id": SAMPLE_DATASET_ID})
    store.save_dataset(dataset)
    logger.info("Seeded sample dataset with {} periods", len(dataset.periods))
    return dataset


def main():
    configure_logging()
    seed_sample_data(DatasetStore(settings.data_dir))


if __name__ == "__main__":
    main()
