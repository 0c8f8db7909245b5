"""
ptimg-restore Test Suite

This package contains tests for the ptimg descriptor parser, the tile compositor
and the page restore pipeline built on them.

Structure:
- unit/: Unit tests for individual components
- integration/: Integration tests for the pipeline and the HTTP API
"""
