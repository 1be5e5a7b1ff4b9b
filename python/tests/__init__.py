"""
Test suite for the bundle-files application.

This package contains tests for every module of the project,
including unit tests, integration tests, and edge case tests.

Test Categories:
- Unit tests: Catalog, naming, validators and codecs in isolation
- Integration tests: Real archives, real PKCS#12 containers, the CLI
- Edge case tests: Name collisions, unsafe archive entries, wrong passwords
"""
