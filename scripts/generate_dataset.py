"""
Synthetic Raw Dataset Generator
Writes the nine raw marketplace CSV streams into the raw zone
"""

from pathlib import Path

from ecommerce_warehouse.config import get_settings
from ecommerce_warehouse.config.logging import configure_logging
from ecommerce_warehouse.data import DataGenerator, GeneratorConfig

OUTPUT_DIR = Path(get_settings().data_lake.raw_path)

CONFIG = GeneratorConfig(
    n_customers=8000,
    n_sellers=400,
    n_products=3000,
    n_orders=10000,
    dirty_fraction=0.01,
)


def main():
    configure_logging()

    print("=" * 60)
    print("Raw Marketplace Dataset Generator")
    print("=" * 60 + "\n")

    raw = DataGenerator(str(OUTPUT_DIR)).generate_all(CONFIG)

    print(f"\nOutput: {OUTPUT_DIR}\n")
    for name, df in raw.items():
        print(f"   {name}: {df.height:,} rows")
    print(f"\nTotal: {sum(df.height for df in raw.values()):,} rows")


if __name__ == "__main__":
    main()
