"""
PotionPlay Test Suite

This package contains all tests for the PotionPlay interaction controller.

Test Organization:
    tests/
    ├── __init__.py          # This file
    ├── conftest.py          # Re-exports the shared fixtures
    ├── fixtures/            # Mock relay, speech and camera collaborators
    │   └── audio/           # Synthetic PCM and WAV payloads
    └── unit/                # Unit tests (no network, camera or audio device)

Running Tests:
    # Run all tests
    pytest tests/

    # Run one component
    pytest tests/unit/test_controller.py

    # Run with coverage
    pytest tests/ --cov=potionplay --cov=voice --cov=services --cov-report=html

Requirements:
    pip install -e ".[test]"
"""
