"""
Test suite for sqlroute.

This package contains tests for all sqlroute components:
- Unit tests for the routing pool, handles and metadata registry
- Unit tests for dialect profiles and DDL generation
- CLI and configuration tests
"""
