"""Shared fixtures: the shop document and the IR built from it.

Session-scoped fixtures load and build once; tests must not mutate them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from sdkgen.config import GeneratorConfig
from sdkgen.context_builder import build_context
from sdkgen.diagnostics import Diagnostics
from sdkgen.ir import Sdk
from sdkgen.loader import load_spec

FIXTURES = Path(__file__).parent / "fixtures"
SHOP_SPEC = FIXTURES / "shop.yaml"


@pytest.fixture(scope="session")
def shop_spec() -> dict[str, Any]:
    return load_spec(SHOP_SPEC)


@pytest.fixture(scope="session")
def shop_diagnostics() -> Diagnostics:
    return Diagnostics()


@pytest.fixture(scope="session")
def shop_sdk(shop_spec: dict[str, Any], shop_diagnostics: Diagnostics) -> Sdk:
    return build_context(shop_spec, GeneratorConfig(package_name="shop"), shop_diagnostics)
