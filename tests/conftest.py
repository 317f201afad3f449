"""Shared fixtures for the product explorer tests."""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest


SAMPLE_PRODUCTS = [
    {"sku": "LMP-100", "description": "Brass Table Lamp", "customer": "A", "rep": "Dana",
     "qty": 2, "price": 10, "cost": 4, "date": "2024-01-05", "inv#": "INV-1"},
    {"sku": "SHD-200", "description": "Linen Shade", "customer": "B", "rep": "Priya",
     "qty": 5, "price": 5, "cost": 2, "date": "2023-12-20", "inv#": "INV-2"},
    {"sku": "LMP-100", "description": "Brass Table Lamp", "customer": "A", "rep": "Dana",
     "qty": 3, "price": 10, "cost": 4, "date": "2024-01-20", "inv#": "INV-3"},
    {"sku": "PND-300", "description": "Glass Pendant", "customer": "B", "rep": "Marco",
     "qty": 1, "price": 0, "cost": 0, "date": "not a date", "inv#": "INV-4"},
    {"sku": "SHD-200", "description": "Linen Shade", "customer": "a", "rep": "Priya",
     "qty": "lots", "price": "5", "cost": 2, "date": "2024-02-01", "inv#": "INV-5"},
]


@pytest.fixture
def records() -> pd.DataFrame:
    return pd.DataFrame(SAMPLE_PRODUCTS).rename(columns={"inv#": "invoice_number"})


@pytest.fixture
def products_file(tmp_path: Path) -> Path:
    path = tmp_path / "products.json"
    path.write_text(json.dumps(SAMPLE_PRODUCTS), encoding="utf-8")
    return path
