"""
tplforge test suite
===================

Test Modules
------------
- test_models.py: Pydantic models and settings
- test_paths.py: Path containment
- test_archive.py: Archive extraction
- test_git_cache.py: Git template cache
- test_resolver.py: Template source resolution
- test_functions.py: Template function library
- test_renderer.py: Template tree rendering
- test_context.py: Render context construction
- test_cli.py: Command-line interface

Running Tests
-------------
    # Run all tests
    pytest

    # Skip tests that need the git executable
    pytest -m "not git"

    # Run specific module
    pytest tests/test_archive.py
"""
