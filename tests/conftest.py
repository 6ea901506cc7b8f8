"""
Pytest configuration shared by the test suite.

Registers the integration marker and --run-integration option, and
provides sample documents plus a settings fixture that forces the
offline collaborators (mock extraction, heuristic scoring).
"""

import pytest
from src.core.config import settings
from src.services.document_types import ExtractedFields


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against the live model API"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring a real ANTHROPIC_API_KEY"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def invoice_data():
    """A clean invoice as the extraction agent would return it"""
    return {
        "vendor_name": "ACME Corp",
        "reference_number": "INV-2024-001",
        "transaction_date": "2024-03-01",
        "payment_due_date": "2024-03-31",
        "total_amount": "1,200.50",
        "currency": "USD",
        "customer_name": "Ammons DataLabs",
        "customer_address": "1 Example Street",
        "line_items": [
            {"description": "Widgets", "quantity": 10, "unit_price": "100.00", "amount": "1000.00"},
            {"description": "Tax", "quantity": None, "unit_price": None, "amount": "200.50"},
        ],
        "extraction_quality": "high",
        "document_type": "invoice",
        "payment_status": "unpaid",
        "missing_fields": [],
    }


@pytest.fixture
def invoice(invoice_data):
    return ExtractedFields.from_agent_output(invoice_data)


@pytest.fixture
def offline_settings():
    """Run without model API credentials or a remote scoring endpoint"""
    original = (settings.anthropic_api_key, settings.scoring_endpoint_url, settings.pipeline_timeout_seconds)
    settings.anthropic_api_key = None
    settings.scoring_endpoint_url = None
    settings.pipeline_timeout_seconds = None
    try:
        yield settings
    finally:
        settings.anthropic_api_key, settings.scoring_endpoint_url, settings.pipeline_timeout_seconds = original
